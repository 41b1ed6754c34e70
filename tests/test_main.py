from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import pytest

from jobworker import main
from jobworker.core.config import Settings


def _patch_runtime(
    monkeypatch: pytest.MonkeyPatch,
    source,
    processor,
    signals: Callable[[asyncio.AbstractEventLoop, Callable[[str], None]], None],
) -> None:
    settings = Settings(otel_enabled=False, worker_count=2, poll_interval_seconds=10.0, shutdown_grace_seconds=5.0)
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    monkeypatch.setattr(main, "build_job_source", lambda _settings: source)
    monkeypatch.setattr(main, "DefaultJobProcessor", lambda: processor)

    @contextmanager
    def fake_signal_handlers(loop: asyncio.AbstractEventLoop, handler: Callable[[str], None]) -> Iterator[None]:
        signals(loop, handler)
        yield

    monkeypatch.setattr(main, "_signal_handlers", fake_signal_handlers)


def test_run_worker_stops_gracefully_on_signal(monkeypatch, source, processor, make_job) -> None:
    source.queued = [make_job("job-1")]

    def send_sigterm(loop: asyncio.AbstractEventLoop, handler: Callable[[str], None]) -> None:
        loop.call_later(0.05, handler, "SIGTERM")

    _patch_runtime(monkeypatch, source, processor, send_sigterm)

    asyncio.run(main.run_worker())

    assert source.poll_calls == [2]
    assert source.reported_ids() == ["job-1"]


def test_second_signal_force_terminates_running_jobs(monkeypatch, source, processor, make_job) -> None:
    source.queued = [make_job("stuck")]
    gates: list[asyncio.Event] = []

    def send_two_signals(loop: asyncio.AbstractEventLoop, handler: Callable[[str], None]) -> None:
        gate = asyncio.Event()
        gates.append(gate)
        processor.gates["stuck"] = gate
        loop.call_later(0.05, handler, "SIGINT")
        loop.call_later(0.1, handler, "SIGINT")

    _patch_runtime(monkeypatch, source, processor, send_two_signals)

    asyncio.run(main.run_worker())

    assert processor.processed == ["stuck"]
    assert not gates[0].is_set()
    assert source.reported_ids() == []
