from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from .updates import Update

__all__ = ["BotApi", "ResponseSink", "TelegramError"]

# getUpdates codes that a retry cannot fix: bad token, competing consumer
FATAL_ERROR_CODES = frozenset({401, 409})


class TelegramError(Exception):
    def __init__(
        self,
        description: str,
        *,
        code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(description)
        self.description = description
        self.code = code
        self.retry_after = retry_after


class BotApi(Protocol):
    async def get_me(self) -> dict[str, Any]: ...

    async def get_updates(
        self,
        timeout: int,
        limit: int,
        offset: int,
        allowed_updates: Sequence[str] | None,
    ) -> list[Update]: ...

    async def call(self, method: str, **params: Any) -> Any: ...


class ResponseSink(Protocol):
    closed: bool

    async def aclose(self) -> None: ...
