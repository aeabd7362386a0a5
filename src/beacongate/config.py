"""Application configuration.

Configuration is loaded from environment variables. For local development, you can provide a
`.env` file and set `BEACONGATE_ENV_FILE` to point to it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """BeaconGate settings.

    All fields are environment-configurable. Prefix is `BEACONGATE_`.
    """

    model_config = SettingsConfigDict(
        env_prefix="BEACONGATE_",
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    app_env: Literal["dev", "prod"] = Field(default="dev")
    log_level: str = Field(default="INFO")

    # Relational store
    database_url: str = Field(default="sqlite:///beacongate.db")

    # Work queue
    queue_backend: Literal["redis", "memory"] = Field(default="redis")
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="beacongate")
    queue_name: str = Field(default="evidence-capture")
    worker_concurrency: int = Field(default=2, ge=1, le=32)
    job_max_deliveries: int = Field(default=2, ge=1, le=20)
    job_backoff_s: float = Field(default=2.0, ge=0.0, le=300.0)
    worker_poll_s: float = Field(default=1.0, gt=0.0, le=60.0)

    # Evidence capture
    storage_root: Path = Field(default=Path("storage/evidence"))
    capture_timeout_s: float = Field(default=20.0, gt=0.0, le=300.0)
    capture_viewport_width: int = Field(default=1280, ge=320, le=3840)
    capture_viewport_height: int = Field(default=720, ge=240, le=2160)
    capture_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        )
    )
    url_max_length: int = Field(default=2048, ge=16, le=8192)

    # Rules
    rules_file: Path | None = Field(default=None)

    # Embeddings
    embedding_provider: Literal["local", "openai"] = Field(default="local")
    embedding_model_id: str = Field(default="BAAI/bge-small-en-v1.5")
    embedding_dimension: int = Field(default=384, ge=1, le=4096)
    embedding_max_chars: int = Field(default=512, ge=1, le=32000)

    # LLM
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="gpt-4.1-mini")
    openai_embedding_model: str = Field(default="text-embedding-3-small")
    openai_timeout_s: float = Field(default=60.0)

    # Advisory
    advisory_provider: Literal["auto", "mock"] = Field(default="auto")
    advisory_temperature: float = Field(default=0.2, ge=0.0, le=2.0)

    # Retrieval
    retrieval_top_k: int = Field(default=6, ge=1, le=50)

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.capture_viewport_width, "height": self.capture_viewport_height}


def load_settings() -> Settings:
    """Load settings from env.

    Returns:
        Settings: Parsed settings.
    """

    env_file_override = os.getenv("BEACONGATE_ENV_FILE")
    if env_file_override:
        env_path = Path(env_file_override)
        return Settings(_env_file=env_path)

    default_env = Path.cwd() / ".env"
    if default_env.exists():
        return Settings(_env_file=default_env)

    return Settings()
