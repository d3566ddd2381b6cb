from __future__ import annotations

"""HTTP helper utilities for forwarding requests to backends."""

from typing import Any, Optional

from multidict import CIMultiDict

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)


def is_aiohttp_session_open(session: Optional[Any]) -> bool:
    """Return True when the provided aiohttp session exists and remains open."""
    if session is None:
        return False
    if not hasattr(session, "closed"):
        return False
    return not bool(session.closed)


def forwardable_headers(headers: CIMultiDict, *, drop: tuple[str, ...] = ()) -> CIMultiDict:
    """Copy ``headers`` without hop-by-hop entries and any extra names in ``drop``."""
    excluded = HOP_BY_HOP_HEADERS | {name.lower() for name in drop}
    return CIMultiDict((name, value) for name, value in headers.items() if name.lower() not in excluded)


def backend_url(dest: str, path: str) -> str:
    """Build the URL of ``path`` on backend ``dest`` (``host:port`` or a full base URL)."""
    if dest.startswith(("http://", "https://")):
        return dest.rstrip("/") + path
    return f"http://{dest}{path}"


__all__ = ["backend_url", "forwardable_headers", "is_aiohttp_session_open"]
