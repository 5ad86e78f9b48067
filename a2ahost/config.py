"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class HostSettings(BaseSettings):
    anthropic_api_key: str = ""
    model: str = "claude-sonnet-4-20250514"
    log_level: str = "INFO"

    # Requests must carry ?accessKey=<value> when set
    access_key: str | None = None

    # Audit trail
    enable_logging: bool = False
    audit_db_path: Path = Path(".a2ahost/a2a_log.db")
    audit_max_chars: int = 40_000

    # Session guard
    lock_timeout_seconds: float = 350.0

    # Outbound HTTP
    fetch_limit: int = 20  # max simultaneous connections per batch
    http_timeout_seconds: float = 30.0

    blob_dir: Path = Path(".a2ahost/blobs")
    timezone: str = "UTC"

    model_config = {"env_prefix": "A2AHOST_"}


settings = HostSettings()
