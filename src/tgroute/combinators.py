from __future__ import annotations

import inspect
import json
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from .context import Context
from .errors import InvalidArgument
from .logging import get_logger
from .pipeline import (
    Handler,
    MiddlewareFn,
    Next,
    compose,
    late_bound,
    run_middleware,
    safe_pass_thru,
    unwrap,
)

logger = get_logger(__name__)

__all__ = [
    "branch",
    "catch",
    "catch_all",
    "dispatch",
    "drop",
    "filter",
    "fork",
    "lazy",
    "log",
    "optional",
    "reply",
    "swallow",
    "tap",
]

Predicate = Callable[[Context], Any] | Any
ErrorHandler = Callable[[Exception, Context], Awaitable[Any] | Any]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def swallow() -> MiddlewareFn:
    async def middleware(ctx: Context, call_next: Next | None = None) -> None:
        return None

    return middleware


def lazy(factory: Callable[[Context], Any]) -> MiddlewareFn:
    if not callable(factory):
        raise InvalidArgument("lazy() factory must be callable")

    async def middleware(ctx: Context, call_next: Next | None = None) -> None:
        handler = await _resolve(factory(ctx))
        await run_middleware(unwrap(handler), ctx, call_next)

    return middleware


def branch(
    predicate: Predicate, if_true: Handler | None, if_false: Handler | None
) -> Handler | None:
    if not callable(predicate):
        return if_true if predicate else if_false

    async def choose(ctx: Context) -> Handler | None:
        return if_true if await _resolve(predicate(ctx)) else if_false

    return lazy(choose)


def optional(predicate: Predicate, *fns: Handler) -> Handler | None:
    return branch(predicate, compose(fns), safe_pass_thru())


def filter(predicate: Predicate) -> Handler | None:
    return branch(predicate, safe_pass_thru(), swallow())


def drop(predicate: Predicate) -> Handler | None:
    return branch(predicate, swallow(), safe_pass_thru())


def dispatch(
    router: Callable[[Context], Any] | Any,
    table: Mapping[Any, Handler] | Sequence[Handler],
) -> Handler | None:
    if not callable(router):
        return table[router]

    async def pick(ctx: Context) -> Handler | None:
        return table[await _resolve(router(ctx))]

    return lazy(pick)


def fork(handler: Handler) -> MiddlewareFn:
    """Run ``handler`` detached; the outer chain continues without waiting.

    The detached run is not linked to the caller: its failures are logged and
    dropped.  The context must carry a task group to spawn onto.
    """
    middleware = late_bound(handler)

    async def detached(ctx: Context) -> None:
        try:
            await run_middleware(middleware, ctx, safe_pass_thru())
        except Exception:
            logger.exception("fork.failed", update_id=ctx.update_id)

    async def forked(ctx: Context, call_next: Next) -> None:
        if ctx.task_group is None:
            raise RuntimeError("fork() needs a context bound to a task group")
        ctx.task_group.start_soon(detached, ctx)
        await call_next(ctx)

    return forked


def tap(handler: Handler) -> MiddlewareFn:
    middleware = late_bound(handler)

    async def tapped(ctx: Context, call_next: Next) -> None:
        await run_middleware(middleware, ctx, safe_pass_thru())
        await call_next(ctx)

    return tapped


def catch(error_handler: ErrorHandler, *fns: Handler) -> MiddlewareFn:
    handler = compose(fns)

    async def middleware(ctx: Context, call_next: Next | None = None) -> None:
        try:
            await run_middleware(handler, ctx, call_next)
        except Exception as exc:
            await _resolve(error_handler(exc, ctx))

    return middleware


def catch_all(*fns: Handler) -> MiddlewareFn:
    def log_error(error: Exception, ctx: Context) -> None:
        logger.error(
            "middleware.failed",
            update_id=ctx.update_id,
            update_type=ctx.update_type,
            exc_info=error,
        )

    return catch(log_error, *fns)


def log(log_fn: Callable[[str], Any] | None = None) -> MiddlewareFn:
    async def dump(ctx: Context, call_next: Next | None = None) -> None:
        rendered = json.dumps(ctx.update, indent=2, ensure_ascii=False, default=str)
        if log_fn is None:
            logger.debug("update.received", update=rendered)
            return
        await _resolve(log_fn(rendered))

    return fork(dump)


def reply(text: str, **extra: Any) -> MiddlewareFn:
    async def middleware(ctx: Context, call_next: Next | None = None) -> None:
        await ctx.reply(text, **extra)

    return middleware
