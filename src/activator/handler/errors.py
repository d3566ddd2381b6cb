"""HTTP responses for routing failures."""

from __future__ import annotations

from aiohttp import web

from activator.errors import NoTargetAvailableError, NotFoundError, StickyBindingConflictError


def send_error(err: Exception) -> web.Response:
    """Map a routing failure to a plain-text error response."""
    msg = f"Error getting active endpoint: {err}"
    if isinstance(err, NotFoundError):
        return web.Response(status=404, text=msg)
    if isinstance(err, (StickyBindingConflictError, NoTargetAvailableError)):
        return web.Response(status=503, text=msg)
    return web.Response(status=500, text=msg)


__all__ = ["send_error"]
