from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Protocol


class ClientTokenNotFoundError(LookupError):
    pass


class ClientTokenProvider(Protocol):
    def lookup_client_token(self, client_id: str) -> str: ...


class StaticClientTokenProvider:
    """Resolves client tokens from a fixed mapping, falling back to a shared default."""

    def __init__(self, tokens: Mapping[str, str] | None = None, default_token: str | None = None) -> None:
        self._tokens = dict(tokens or {})
        self._default_token = default_token

    def lookup_client_token(self, client_id: str) -> str:
        token = self._tokens.get(client_id)
        if token:
            return token
        if self._default_token:
            return self._default_token
        raise ClientTokenNotFoundError(f"no client token configured for client_id={client_id}")


def parse_client_tokens(raw: str | None) -> dict[str, str]:
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(decoded, dict):
        return {}

    parsed: dict[str, str] = {}
    for raw_client_id, raw_token in decoded.items():
        if not isinstance(raw_client_id, str) or not isinstance(raw_token, str):
            continue
        client_id = raw_client_id.strip()
        token = raw_token.strip()
        if client_id and token:
            parsed[client_id] = token
    return parsed
