from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import anyio
from anyio.abc import TaskGroup

from .composer import Composer
from .context import Context
from .errors import HandlerTimeout, InvalidArgument, UpstreamFatal
from .logging import bind_update_context, get_logger
from .pipeline import MiddlewareFn, run_middleware
from .settings import BotSettings
from .telegram.client import BotApi, ResponseSink
from .telegram.loop import Poller
from .telegram.updates import Update

logger = get_logger(__name__)

__all__ = ["Bot", "ErrorHandler"]

ErrorHandler = Callable[[Exception, Context], Awaitable[Any] | Any]


def _log_and_raise(error: Exception, ctx: Context) -> None:
    logger.error(
        "update.failed",
        update_id=ctx.update_id,
        update_type=ctx.update_type,
        exc_info=error,
    )
    raise error


def _first_leaf(group: BaseExceptionGroup) -> BaseException:
    error: BaseException = group
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error


async def _end_of_chain(ctx: Context | None = None) -> None:
    return None


@dataclass(slots=True)
class _Outcome:
    done: anyio.Event = field(default_factory=anyio.Event)
    error: Exception | None = None
    abandoned: bool = False


class Bot(Composer):
    """Dispatches updates through the registered middleware chain.

    Handler time-outs are a time-box, not a kill: once the budget elapses the
    bot stops waiting and reports :class:`HandlerTimeout`, but the pipeline
    keeps running on the task group until it finishes on its own.  Detached
    work (time-boxed pipelines, ``fork``) lands on the task group opened by
    :meth:`running`; outside of it each :meth:`handle_update` call opens its
    own group and joins that work before returning.
    """

    def __init__(
        self,
        api: BotApi | None = None,
        *,
        options: BotSettings | None = None,
        context_type: type[Context] = Context,
        error_handler: ErrorHandler = _log_and_raise,
    ) -> None:
        super().__init__()
        self.api = api
        self.options = options if options is not None else BotSettings()
        self.context_type = context_type
        # extra attributes copied onto every context
        self.context: dict[str, Any] = {}
        self.bot_info: Mapping[str, Any] | None = None
        self.username = self.options.username
        self.polling = Poller(self, retry_after=self.options.retry_after)
        self._error_handler = error_handler
        self._bot_info_lock = anyio.Lock()
        self._task_group: TaskGroup | None = None

    def catch(self, handler: ErrorHandler) -> Bot:
        self._error_handler = handler
        return self

    @asynccontextmanager
    async def running(self) -> AsyncIterator[TaskGroup]:
        if self._task_group is not None:
            raise RuntimeError("bot is already running")
        try:
            async with anyio.create_task_group() as tg:
                self._task_group = tg
                yield tg
        finally:
            self._task_group = None

    @asynccontextmanager
    async def _task_scope(self) -> AsyncIterator[TaskGroup]:
        if self._task_group is not None:
            yield self._task_group
            return
        async with anyio.create_task_group() as tg:
            yield tg

    def _set_bot_info(self, bot_info: Mapping[str, Any]) -> None:
        self.bot_info = bot_info
        self.username = bot_info.get("username") or self.username

    async def _ensure_bot_info(self, update_id: int | None) -> None:
        if self.bot_info is not None or self.api is None:
            return
        logger.debug("update.waiting_for_bot_info", update_id=update_id)
        async with self._bot_info_lock:
            if self.bot_info is None:
                self._set_bot_info(await self.api.get_me())

    def _make_context(self, update: Update, response: ResponseSink | None) -> Context:
        ctx = self.context_type(
            update,
            self.api,
            bot_info=self.bot_info,
            me=self.username,
            response=response,
        )
        for name, value in self.context.items():
            setattr(ctx, name, value)
        return ctx

    async def handle_updates(self, updates: Sequence[Update]) -> None:
        """Handle a batch concurrently; completion order is unspecified."""
        if isinstance(updates, str | bytes | Mapping) or not isinstance(
            updates, Sequence
        ):
            raise InvalidArgument("updates must be a sequence")
        errors: list[Exception] = []

        async def handle(update: Update) -> None:
            try:
                await self.handle_update(update)
            except Exception as exc:
                errors.append(exc)

        async with anyio.create_task_group() as tg:
            for update in updates:
                tg.start_soon(handle, update)
        if errors:
            raise ExceptionGroup("failed to handle updates", errors)

    async def handle_update(
        self, update: Update, response: ResponseSink | None = None
    ) -> None:
        await self._ensure_bot_info(update.get("update_id"))
        ctx = self._make_context(update, response)
        reraised: Exception | None = None
        with bind_update_context(update_id=ctx.update_id, update_type=ctx.update_type):
            logger.debug("update.processing", sub_types=ctx.update_sub_types)
            try:
                async with self._task_scope() as tg:
                    ctx.task_group = tg
                    failure = await self._run_pipeline(ctx)
                    if failure is not None:
                        try:
                            result = self._error_handler(failure, ctx)
                            if inspect.isawaitable(result):
                                await result
                        except Exception as exc:
                            reraised = exc
            finally:
                if response is not None and not response.closed:
                    await response.aclose()
        if reraised is not None:
            raise reraised

    async def _run_pipeline(self, ctx: Context) -> Exception | None:
        pipeline = self.middleware()
        timeout = self.options.handler_timeout
        if timeout is None:
            try:
                await run_middleware(pipeline, ctx, _end_of_chain)
            except Exception as exc:
                return exc
            return None

        outcome = _Outcome()
        assert ctx.task_group is not None
        ctx.task_group.start_soon(self._run_time_boxed, pipeline, ctx, outcome)
        with anyio.move_on_after(timeout):
            await outcome.done.wait()
        if not outcome.done.is_set():
            outcome.abandoned = True
            logger.warning("update.timeout", timeout_s=timeout)
            return HandlerTimeout(timeout, update_id=ctx.update_id)
        return outcome.error

    async def _run_time_boxed(
        self, pipeline: MiddlewareFn, ctx: Context, outcome: _Outcome
    ) -> None:
        try:
            await run_middleware(pipeline, ctx, _end_of_chain)
        except Exception as exc:
            outcome.error = exc
            if outcome.abandoned:
                logger.error(
                    "update.abandoned.failed", update_id=ctx.update_id, exc_info=exc
                )
        else:
            if outcome.abandoned:
                logger.info("update.abandoned.finished", update_id=ctx.update_id)
        finally:
            outcome.done.set()

    def _require_api(self) -> BotApi:
        if self.api is None:
            raise RuntimeError("bot has no api client")
        return self.api

    async def launch(
        self,
        *,
        timeout: int | None = None,
        limit: int | None = None,
        allowed_updates: str | Sequence[str] | None = None,
        drop_pending_updates: bool = False,
        stop_callback: Callable[[], Any] | None = None,
    ) -> None:
        """Long-poll until :meth:`stop` is called or polling fails fatally."""
        api = self._require_api()
        logger.info("bot.connecting")
        self._set_bot_info(await api.get_me())
        logger.info("bot.launching", username=self.username)
        await api.call("deleteWebhook", drop_pending_updates=False)
        try:
            async with self.running() as tg:
                if drop_pending_updates:
                    await self.polling.drain_backlog()
                self.polling.start(
                    tg,
                    timeout=(
                        self.options.polling_timeout if timeout is None else timeout
                    ),
                    limit=self.options.polling_limit if limit is None else limit,
                    allowed_updates=(
                        self.options.allowed_updates
                        if allowed_updates is None
                        else allowed_updates
                    ),
                    stop_callback=stop_callback,
                )
                logger.info("bot.started", mode="polling")
        except ExceptionGroup as group:
            fatal, rest = group.split(UpstreamFatal)
            if fatal is None or rest is not None:
                raise
            raise _first_leaf(fatal)

    async def stop(self, callback: Callable[[], Any] | None = None) -> None:
        """Stop polling.

        Waits for the current cycle to settle, except when called from a handler
        of the batch in flight: then it returns at once and ``callback`` runs
        once polling has halted.
        """
        logger.info("bot.stopping")
        await self.polling.stop(callback)
