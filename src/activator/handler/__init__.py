"""Request handlers of the activator."""

from .context import RequestContext, request_context_from, with_request_context
from .context_handler import ContextHandler, revision_id_from_request
from .errors import send_error
from .routing_handler import RoutingHandler

__all__ = [
    "ContextHandler",
    "RequestContext",
    "RoutingHandler",
    "request_context_from",
    "revision_id_from_request",
    "send_error",
    "with_request_context",
]
