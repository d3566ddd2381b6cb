"""Tests for the terminal routing handler."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from aiohttp import test_utils, web
from aiohttp.test_utils import make_mocked_request
from multidict import CIMultiDict, MultiDict

from activator.errors import NoTargetAvailableError, RevisionNotFoundError, StickyBindingConflictError
from activator.handler import RequestContext, RoutingHandler, request_context_from, with_request_context
from activator.handler.errors import send_error
from activator.metadata import Revision
from activator.net import TargetRegistry
from activator.net.lb_policy import FirstAvailablePolicy
from activator.net.tracker import PodTracker
from activator.session import ProxyRequest, SessionPolicy

REVISION = Revision("default", "rev-1")


def _routed_request(path: str = "/items") -> web.Request:
    request = make_mocked_request("GET", path, headers={"Host": "activator.local"})
    with_request_context(
        request,
        RequestContext(
            revision=REVISION,
            revision_id=REVISION.id,
            request=ProxyRequest(path=path, headers=CIMultiDict({"X-Trace": "t1"})),
            session_policy=SessionPolicy(),
        ),
    )
    return request


def _registry(*trackers: PodTracker) -> TargetRegistry:
    registry = TargetRegistry(FirstAvailablePolicy)
    if trackers:
        registry.update(REVISION.id, trackers)
    return registry


@pytest.mark.asyncio
async def test_unknown_revision_targets_are_unavailable():
    forward = AsyncMock()
    handler = RoutingHandler(_registry(), acquire_timeout=0.01, forward=forward)

    response = await handler.handle(_routed_request())

    assert response.status == 503
    forward.assert_not_awaited()


@pytest.mark.asyncio
async def test_request_is_forwarded_to_acquired_backend_and_released():
    tracker = PodTracker("10.0.0.1:8080", capacity=1)
    seen = []

    async def forward(request, proxy_request, pick):
        seen.append((proxy_request.path, pick, pick.in_flight))
        return web.Response(text="proxied")

    handler = RoutingHandler(_registry(tracker), acquire_timeout=0.1, forward=forward)

    response = await handler.handle(_routed_request())

    assert response.status == 200
    assert seen == [("/items", tracker, 1)]
    assert tracker.in_flight == 0


@pytest.mark.asyncio
async def test_backend_capacity_exhaustion_times_out():
    tracker = PodTracker("10.0.0.1:8080", capacity=1)
    tracker.reserve()
    forward = AsyncMock()
    handler = RoutingHandler(_registry(tracker), acquire_timeout=0.02, forward=forward)

    response = await handler.handle(_routed_request())

    assert response.status == 503
    assert "default/rev-1" in response.text
    forward.assert_not_awaited()


@pytest.mark.asyncio
async def test_forward_error_still_releases_capacity():
    tracker = PodTracker("10.0.0.1:8080", capacity=1)
    handler = RoutingHandler(_registry(tracker), acquire_timeout=0.1, forward=AsyncMock(side_effect=RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        await handler.handle(_routed_request())

    assert tracker.in_flight == 0


def test_missing_request_context_is_a_wiring_error():
    request = make_mocked_request("GET", "/", headers={"Host": "activator.local"})

    with pytest.raises(LookupError):
        request_context_from(request)


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (RevisionNotFoundError("default", "rev-1"), 404),
        (StickyBindingConflictError("abc", 5), 503),
        (NoTargetAvailableError("default/rev-1", 1.0), 503),
        (RuntimeError("unexpected"), 500),
    ],
)
def test_send_error_status_mapping(error, status):
    response = send_error(error)

    assert response.status == status
    assert response.text.startswith("Error getting active endpoint: ")


@pytest.mark.asyncio
async def test_forward_proxies_to_backend_over_http():
    async def backend_handler(request: web.Request) -> web.Response:
        return web.Response(
            text=f"{request.method} {request.path} {request.query.get('q', '')}",
            headers={"X-Trace-Echo": request.headers.get("X-Trace", "")},
        )

    backend = web.Application()
    backend.router.add_route("*", "/{tail:.*}", backend_handler)

    async with test_utils.TestServer(backend) as server:
        handler = RoutingHandler(_registry(), acquire_timeout=0.1)
        tracker = PodTracker(f"{server.host}:{server.port}")
        proxy_request = ProxyRequest(
            path="/items",
            headers=CIMultiDict({"X-Trace": "t1", "Connection": "keep-alive"}),
            query=MultiDict({"q": "shoes"}),
        )
        request = make_mocked_request("GET", "/items", headers={"Host": "activator.local"})

        try:
            response = await handler.forward(request, proxy_request, tracker)
        finally:
            await handler.close()

    assert response.status == 200
    assert response.body == b"GET /items shoes"
    assert response.headers["X-Trace-Echo"] == "t1"
    assert handler.session is None


@pytest.mark.asyncio
async def test_forward_reports_unreachable_backend_as_bad_gateway():
    handler = RoutingHandler(_registry(), acquire_timeout=0.1)
    request = make_mocked_request("GET", "/", headers={"Host": "activator.local"})

    try:
        response = await handler.forward(request, ProxyRequest(), PodTracker("127.0.0.1:1"))
    finally:
        await handler.close()

    assert response.status == 502


@pytest.mark.asyncio
async def test_forward_preserves_encoded_path_and_query():
    async def backend_handler(request: web.Request) -> web.Response:
        return web.Response(text=request.raw_path)

    backend = web.Application()
    backend.router.add_route("*", "/{tail:.*}", backend_handler)

    async with test_utils.TestServer(backend) as server:
        handler = RoutingHandler(_registry(), acquire_timeout=0.1)
        request = make_mocked_request("GET", "/files/a%2Fb?flag", headers={"Host": "activator.local"})
        proxy_request = ProxyRequest.from_web_request(request)

        try:
            response = await handler.forward(request, proxy_request, PodTracker(f"{server.host}:{server.port}"))
        finally:
            await handler.close()

    # The decoded path still drives session path segments.
    assert proxy_request.path == "/files/a/b"
    assert response.status == 200
    assert response.body == b"/files/a%2Fb?flag"


def test_routing_context_carries_session_key_from_request_context():
    context = RequestContext(
        revision=REVISION,
        revision_id=REVISION.id,
        request=ProxyRequest(),
        session_policy=SessionPolicy(),
        session_key="u1",
    )

    assert context.routing_context().session_key == "u1"
