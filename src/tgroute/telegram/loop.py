from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio
from anyio.abc import TaskGroup

from ..errors import UpstreamFatal
from ..logging import get_logger
from .client import FATAL_ERROR_CODES
from .updates import Update

if TYPE_CHECKING:
    from ..bot import Bot

logger = get_logger(__name__)

__all__ = ["Poller", "PollingCursor"]

# set while a batch is being handled; handler tasks inherit it
_current_poller: ContextVar[Poller | None] = ContextVar("current_poller", default=None)


@dataclass(slots=True)
class PollingCursor:
    offset: int = 0
    timeout: int = 30
    limit: int = 100
    allowed_updates: list[str] | None = None
    started: bool = False
    stop_callback: Callable[[], Any] | None = None


def _allowed_updates(value: str | Sequence[str] | None) -> list[str] | None:
    if not value:
        return None
    if isinstance(value, str):
        return [value]
    return list(value)


class Poller:
    """Long-poll ``getUpdates`` and feed each batch to the bot.

    One fetch-then-process cycle runs at a time.  ``cursor.started`` is the
    only stop signal; it is checked at the top of every cycle, so a stop
    requested mid-cycle lands once the current batch settles.
    """

    def __init__(
        self,
        bot: Bot,
        *,
        retry_after: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._bot = bot
        self._retry_after = retry_after
        self._sleep = sleep
        self.cursor = PollingCursor()
        self._running = False
        self._halted: anyio.Event | None = None
        self._on_halt: list[Callable[[], Any]] = []

    @property
    def running(self) -> bool:
        return self._running

    def start(
        self,
        task_group: TaskGroup,
        *,
        timeout: int = 30,
        limit: int = 100,
        allowed_updates: str | Sequence[str] | None = None,
        stop_callback: Callable[[], Any] | None = None,
    ) -> Poller:
        cursor = self.cursor
        cursor.timeout = timeout
        cursor.limit = limit
        cursor.allowed_updates = _allowed_updates(allowed_updates)
        cursor.stop_callback = stop_callback
        if not cursor.started:
            cursor.started = True
            if not self._running:
                self._running = True
                self._halted = anyio.Event()
                task_group.start_soon(self.run)
        return self

    async def stop(self, callback: Callable[[], Any] | None = None) -> None:
        """Stop polling and wait until the loop has halted.

        Called from a handler of the batch in flight, waiting would never
        return, so the callback is deferred until the loop halts instead.
        """
        if self._running and self._halted is not None:
            self.cursor.started = False
            if _current_poller.get() is self:
                if callback is not None:
                    self._on_halt.append(callback)
                return
            await self._halted.wait()
        if callback is not None:
            callback()

    async def run(self) -> None:
        self._running = True
        if self._halted is None:
            self._halted = anyio.Event()
        try:
            while True:
                if not self.cursor.started:
                    logger.info("polling.stopped", offset=self.cursor.offset)
                    self._notify_stopped()
                    return
                updates = await self._fetch()
                await self._process(updates)
        finally:
            self._running = False
            self._halted.set()
            self._halted = None
            callbacks, self._on_halt = self._on_halt, []
            for callback in callbacks:
                callback()

    def _notify_stopped(self) -> None:
        callback, self.cursor.stop_callback = self.cursor.stop_callback, None
        if callback is not None:
            callback()

    async def _fetch(self) -> list[Update]:
        cursor = self.cursor
        api = self._bot.api
        if api is None:
            raise RuntimeError("polling needs a bot with an api client")
        try:
            return await api.get_updates(
                cursor.timeout, cursor.limit, cursor.offset, cursor.allowed_updates
            )
        except Exception as exc:
            code = getattr(exc, "code", None)
            if code in FATAL_ERROR_CODES:
                logger.error("polling.fetch.fatal", code=code, error=str(exc))
                cursor.started = False
                self._notify_stopped()
                raise UpstreamFatal(f"getUpdates failed: {exc}", code=code) from exc
            wait = getattr(exc, "retry_after", None) or self._retry_after
            logger.warning(
                "polling.fetch.failed", code=code, retry_after=wait, error=str(exc)
            )
            await self._sleep(wait)
            return []

    async def _process(self, updates: list[Update]) -> None:
        cursor = self.cursor
        if not cursor.started or not updates:
            return
        logger.debug("polling.updates", count=len(updates), offset=cursor.offset)
        token = _current_poller.set(self)
        try:
            await self._bot.handle_updates(updates)
            offset = max(update["update_id"] for update in updates) + 1
        except Exception:
            logger.exception("polling.process.failed", count=len(updates))
            cursor.started = False
            cursor.offset = 0
            return
        finally:
            _current_poller.reset(token)
        cursor.offset = offset

    async def drain_backlog(self) -> int:
        """Skip updates that queued up while the bot was offline."""
        cursor = self.cursor
        api = self._bot.api
        if api is None:
            raise RuntimeError("polling needs a bot with an api client")
        drained = 0
        while True:
            try:
                updates = await api.get_updates(
                    0, cursor.limit, cursor.offset, cursor.allowed_updates
                )
            except Exception as exc:
                logger.warning("startup.backlog.failed", error=str(exc))
                return drained
            logger.debug("startup.backlog.updates", count=len(updates))
            if not updates:
                if drained:
                    logger.info("startup.backlog.drained", count=drained)
                return drained
            cursor.offset = updates[-1]["update_id"] + 1
            drained += len(updates)
