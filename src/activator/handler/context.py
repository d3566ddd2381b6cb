"""Request-scoped values attached by the context handler."""

from __future__ import annotations

from dataclasses import dataclass

from aiohttp import web

from activator.metadata import NamespacedName, Revision
from activator.net.session_binding import RoutingContext
from activator.session import ProxyRequest, SessionPolicy

REQUEST_CONTEXT_KEY = "activator.request_context"


@dataclass(frozen=True)
class RequestContext:
    """Authoritative revision for one request plus what routing needs downstream."""

    revision: Revision
    revision_id: NamespacedName
    request: ProxyRequest
    session_policy: SessionPolicy
    session_key: str = ""

    def routing_context(self) -> RoutingContext:
        return RoutingContext(
            request=self.request,
            session_policy=self.session_policy,
            resolved_session_key=self.session_key,
        )


def with_request_context(request: web.Request, context: RequestContext) -> None:
    request[REQUEST_CONTEXT_KEY] = context


def request_context_from(request: web.Request) -> RequestContext:
    try:
        return request[REQUEST_CONTEXT_KEY]
    except KeyError as exc:
        raise LookupError("request has no activator context; is ContextHandler installed?") from exc


__all__ = ["RequestContext", "request_context_from", "with_request_context"]
