"""Middleware composition.

A middleware is ``(ctx, call_next)``; ``call_next`` is a continuation that
runs the rest of the chain, optionally with a substitute context.  Plain
functions and coroutine functions are both accepted.  Anything exposing a
``middleware()`` accessor (a :class:`~tgroute.composer.Composer`, for one) is
unwrapped at the moment it runs, so routers stay live after registration.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, TypeAlias, runtime_checkable

from .context import Context
from .errors import InvalidArgument, ProtocolViolation

__all__ = [
    "Handler",
    "MiddlewareFn",
    "MiddlewareProvider",
    "Next",
    "check_handler",
    "late_bound",
    "compose",
    "pass_thru",
    "run_middleware",
    "safe_pass_thru",
    "unwrap",
]

Next: TypeAlias = Callable[..., Awaitable[None]]
MiddlewareFn: TypeAlias = Callable[..., Awaitable[Any] | Any]


@runtime_checkable
class MiddlewareProvider(Protocol):
    def middleware(self) -> MiddlewareFn: ...


Handler: TypeAlias = MiddlewareFn | MiddlewareProvider


def _is_provider(handler: object) -> bool:
    return callable(getattr(handler, "middleware", None))


def check_handler(handler: Handler | None) -> Handler:
    if handler is None:
        raise InvalidArgument("handler is undefined")
    if not (_is_provider(handler) or callable(handler)):
        raise InvalidArgument(
            f"handler must be callable or expose middleware(), got {type(handler).__name__}"
        )
    return handler


def unwrap(handler: Handler | None) -> MiddlewareFn:
    handler = check_handler(handler)
    if _is_provider(handler):
        return handler.middleware()  # type: ignore[union-attr]
    return handler  # type: ignore[return-value]


def late_bound(handler: Handler | None) -> MiddlewareFn:
    """Like :func:`unwrap`, but defers the accessor call of a provider to each run."""
    handler = check_handler(handler)
    if not _is_provider(handler):
        return handler  # type: ignore[return-value]

    async def middleware(ctx: Context, call_next: Next | None = None) -> None:
        await run_middleware(unwrap(handler), ctx, call_next)

    return middleware


async def run_middleware(
    middleware: MiddlewareFn, ctx: Context, call_next: Next | None
) -> None:
    result = middleware(ctx, call_next)
    if inspect.isawaitable(result):
        await result


def pass_thru() -> MiddlewareFn:
    async def middleware(ctx: Context, call_next: Next) -> None:
        await call_next(ctx)

    return middleware


def safe_pass_thru() -> MiddlewareFn:
    async def middleware(ctx: Context, call_next: Next | None = None) -> None:
        if call_next is not None:
            await call_next(ctx)

    return middleware


class _Traversal:
    """One walk over a handler arena for a single context."""

    __slots__ = ("_handlers", "_reached", "_tail")

    def __init__(self, handlers: tuple[Handler, ...], tail: Next | None) -> None:
        self._handlers = handlers
        self._tail = tail
        self._reached = -1

    def continuation(self, index: int, ctx: Context) -> Next:
        async def call_next(next_ctx: Context | None = None) -> None:
            await self.step(index, ctx if next_ctx is None else next_ctx)

        return call_next

    async def step(self, index: int, ctx: Context) -> None:
        if not isinstance(ctx, Context):
            raise ProtocolViolation("invalid context passed to continuation")
        if index <= self._reached:
            raise ProtocolViolation("continuation invoked more than once")
        self._reached = index
        if index < len(self._handlers):
            await run_middleware(
                unwrap(self._handlers[index]), ctx, self.continuation(index + 1, ctx)
            )
        elif self._tail is not None:
            await self._tail(ctx)


def compose(middlewares: Sequence[Handler]) -> MiddlewareFn:
    if isinstance(middlewares, str | bytes) or not isinstance(middlewares, Sequence):
        raise InvalidArgument("middlewares must be a sequence")
    handlers = tuple(check_handler(item) for item in middlewares)
    if not handlers:
        return safe_pass_thru()
    if len(handlers) == 1:
        return late_bound(handlers[0])

    async def composed(ctx: Context, call_next: Next | None = None) -> None:
        await _Traversal(handlers, call_next).step(0, ctx)

    return composed
