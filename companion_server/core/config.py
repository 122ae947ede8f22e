from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="COMPANION_",
        extra="allow",
    )

    # app
    app_name: str = "Companion Server"
    app_env: str = "dev"
    log_level: str = "INFO"

    # http
    api_host: str = "0.0.0.0"
    api_port: int = 9863
    cors_origins: List[str] = ["*"]
    # clients allowed on /operator and /content (the desktop shell itself)
    operator_hosts: List[str] = ["127.0.0.1", "::1", "localhost"]

    # infra
    redis_url: str = "redis://localhost:6379/0"
    data_dir: str = "./data"

    # pairing gate
    # Fernet key (urlsafe base64). Empty = generated once into data_dir.
    pairing_gate_key: str = ""
    pairing_window_s: float = 300.0

    # pairing codes / consent
    code_ttl_s: float = 20.0
    code_issue_attempts: int = 10
    consent_timeout_s: float = 30.0
    disconnect_poll_s: float = 0.25

    # embedded content round trips
    catalog_timeout_s: float = 5.0

    # realtime fan-out
    realtime_send_timeout_s: float = 2.0
    realtime_max_queued: int = 1000


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
