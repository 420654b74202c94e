from __future__ import annotations

__all__ = [
    "HandlerTimeout",
    "InvalidArgument",
    "ProtocolViolation",
    "TgRouteError",
    "UpstreamFatal",
]


class TgRouteError(Exception):
    pass


class ProtocolViolation(TgRouteError):
    """Middleware misused its continuation."""


class InvalidArgument(TgRouteError, ValueError):
    """Malformed input at registration or composition time."""


class HandlerTimeout(TgRouteError, TimeoutError):
    def __init__(self, timeout_s: float, *, update_id: int | None = None) -> None:
        super().__init__(f"update handling exceeded {timeout_s}s")
        self.timeout_s = timeout_s
        self.update_id = update_id


class UpstreamFatal(TgRouteError):
    """Update fetching failed in a way that retrying cannot fix."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
