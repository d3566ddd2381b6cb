"""Terminal handler: acquires a backend of the resolved revision and forwards the request."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import aiohttp
from aiohttp import web
from yarl import URL

from activator.errors import NoTargetAvailableError
from activator.http_utils import backend_url, forwardable_headers, is_aiohttp_session_open
from activator.net.revision_targets import TargetRegistry
from activator.net.tracker import PodTracker
from activator.session import ProxyRequest

from .context import request_context_from
from .errors import send_error

logger = logging.getLogger(__name__)

Forwarder = Callable[[web.Request, ProxyRequest, PodTracker], Awaitable[web.StreamResponse]]


class RoutingHandler:
    """Routes each request to a backend picked by its revision's policy."""

    def __init__(
        self,
        registry: TargetRegistry,
        *,
        acquire_timeout: float,
        forward: Optional[Forwarder] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._registry = registry
        self._acquire_timeout = acquire_timeout
        self._forward = forward or self.forward
        self.session = session

    async def handle(self, request: web.Request) -> web.StreamResponse:
        ctx = request_context_from(request)
        targets = self._registry.get(ctx.revision_id)
        if targets is None:
            return send_error(NoTargetAvailableError(str(ctx.revision_id), 0.0))

        try:
            async with targets.route(ctx.routing_context(), self._acquire_timeout) as tracker:
                logger.debug("Routing %s %s to %s", ctx.request.method, ctx.request.path, tracker.dest)
                return await self._forward(request, ctx.request, tracker)
        except NoTargetAvailableError as exc:
            logger.warning("%s", exc)
            return send_error(exc)

    async def forward(self, request: web.Request, proxy_request: ProxyRequest, tracker: PodTracker) -> web.StreamResponse:
        session = self._ensure_session()
        body = await request.read() if request.can_read_body else None
        if proxy_request.raw_path:
            # Already encoded by the client; forwarded byte for byte.
            url = URL(backend_url(tracker.dest, proxy_request.raw_path), encoded=True)
            params = None
        else:
            url = URL(backend_url(tracker.dest, proxy_request.path))
            params = proxy_request.query
        try:
            async with session.request(
                proxy_request.method,
                url,
                params=params,
                headers=forwardable_headers(proxy_request.headers, drop=("Host", "Content-Length")),
                data=body or None,
                allow_redirects=False,
            ) as upstream:
                payload = await upstream.read()
                headers = forwardable_headers(upstream.headers, drop=("Content-Length",))
                return web.Response(status=upstream.status, body=payload, headers=headers)
        except aiohttp.ClientError as exc:
            logger.warning("Backend %s failed: %s", tracker.dest, exc)
            return web.Response(status=502, text=f"Error proxying to {tracker.dest}: {exc}")

    def _ensure_session(self) -> aiohttp.ClientSession:
        if not is_aiohttp_session_open(self.session):
            self.session = aiohttp.ClientSession(auto_decompress=False)
        return self.session

    async def close(self) -> None:
        if is_aiohttp_session_open(self.session):
            await self.session.close()
        self.session = None


__all__ = ["RoutingHandler"]
