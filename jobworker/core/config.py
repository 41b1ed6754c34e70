from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

JobSourceMode = Literal["direct", "delegated"]


class Settings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:8000"
    module_id: str = "local-jobworker"
    api_key: str = "local-jobworker-key"
    request_timeout_seconds: float = 10.0
    job_source_mode: JobSourceMode = "direct"
    action_category: str = "Deploy"
    action_provider: str = "JobWorkerAction"
    action_version: str = "1"
    client_tokens_json: str | None = None
    default_client_token: str | None = None
    worker_count: int = 10
    poll_batch_size: int | None = None
    poll_interval_seconds: float = 30.0
    shutdown_grace_seconds: float = 60.0
    otel_enabled: bool = True
    otel_service_name: str = "jobworker"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JOBWORKER_", extra="ignore")

    @property
    def effective_poll_batch_size(self) -> int:
        # By convention the batch size matches the number of worker slots.
        return self.poll_batch_size if self.poll_batch_size is not None else self.worker_count


@lru_cache
def get_settings() -> Settings:
    return Settings()
