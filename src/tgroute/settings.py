from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["BotSettings"]


class BotSettings(BaseSettings):
    """Dispatcher and polling options, overridable through ``TGROUTE_*`` env vars."""

    model_config = SettingsConfigDict(
        env_prefix="TGROUTE_",
        extra="ignore",
        frozen=True,
    )

    username: str | None = None
    # seconds; None leaves update handling unbounded
    handler_timeout: float | None = Field(default=None, gt=0)
    retry_after: float = Field(default=1.0, ge=0)
    polling_timeout: int = Field(default=30, ge=0)
    polling_limit: int = Field(default=100, ge=1, le=100)
    allowed_updates: tuple[str, ...] | None = None

    @field_validator("username")
    @classmethod
    def _strip_at(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.removeprefix("@") or None
