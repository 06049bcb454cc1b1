from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    project_name: str = "sharebox"
    api_prefix: str = "/api"

    database_url: str = Field(
        default="postgresql+asyncpg://sharebox:sharebox@db:5432/sharebox",
        description="SQLAlchemy async database URL",
    )
    redis_url: str = Field(default="redis://redis:6379/0", description="Redis connection URL")

    storage_root: Path = Field(
        default=Path(__file__).resolve().parents[3] / "Storage",
        description="Base directory for share payloads",
    )
    shares_dir_name: str = Field(default="shares")

    max_file_size_bytes: int = Field(default=5 * 1024 * 1024 * 1024, ge=1)
    max_request_size_bytes: int = Field(default=6 * 1024 * 1024 * 1024, ge=1)

    default_ttl_hours: float = Field(default=24, gt=0)

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    jwt_secret: str = Field(default="change-me-please", min_length=10)
    jwt_algorithm: str = Field(default="HS256")
    share_token_expire_minutes: int = Field(default=30, ge=1)

    reaper_interval_seconds: float = Field(default=60 * 60, gt=0)
    reaper_batch_size: int = Field(default=200, ge=1)
    orphan_grace_minutes: int = Field(default=60, ge=1)

    telegram_enabled: bool = False
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    telegram_api_url: str = "https://api.telegram.org"
    notification_timeout_seconds: float = Field(default=10.0, gt=0)

    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator("storage_root", mode="before")
    @classmethod
    def _build_storage_root(cls, value: Path | str) -> Path:
        return Path(value)

    @property
    def shares_dir(self) -> Path:
        return self.storage_root / self.shares_dir_name

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    @property
    def notifications_configured(self) -> bool:
        return self.telegram_enabled and bool(self.telegram_bot_token) and bool(self.telegram_chat_id)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
