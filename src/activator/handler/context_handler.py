"""
Context handler: resolves the authoritative revision of each request.

When the owning service configures session stickiness, the first request of
a session binds ``rev/<session>`` to its revision with compare-and-swap;
later requests of the session are routed to that revision for as long as it
exists.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from aiohttp import web

from activator.errors import (
    AffinityStoreError,
    MetadataLookupError,
    NotFoundError,
    RevisionNotFoundError,
    StickyBindingConflictError,
)
from activator.metadata import MetadataLookup, NamespacedName, Revision
from activator.session import ProxyRequest, SessionPolicy, apply_deactivate_marker, resolve_session_key
from activator.store import AffinityStore

from .context import RequestContext, with_request_context
from .errors import send_error

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

REVISION_HEADER_NAMESPACE = "Knative-Serving-Namespace"
REVISION_HEADER_NAME = "Knative-Serving-Revision"
REVISION_KEY_PREFIX = "rev/"
DEFAULT_MAX_CAS_ATTEMPTS = 5


def revision_id_from_request(request: ProxyRequest, cluster_domain: str) -> NamespacedName:
    """Read the revision from explicit headers, else from a ``name.namespace.svc.<domain>`` host."""
    namespace = request.headers.get(REVISION_HEADER_NAMESPACE, "")
    name = request.headers.get(REVISION_HEADER_NAME, "")

    if not name or not namespace:
        parts = request.host.split(".", 3)
        if len(parts) == 4 and parts[2] == "svc" and parts[3].split(":", 1)[0] == cluster_domain:
            name, namespace = parts[0], parts[1]

    return NamespacedName(namespace=namespace, name=name)


class ContextHandler:
    """Enriches each request with its revision before handing it on."""

    def __init__(
        self,
        lookup: MetadataLookup,
        store: Optional[AffinityStore] = None,
        *,
        cluster_domain: str = "cluster.local",
        max_cas_attempts: int = DEFAULT_MAX_CAS_ATTEMPTS,
    ) -> None:
        self._lookup = lookup
        self._store = store
        self._cluster_domain = cluster_domain
        self._max_cas_attempts = max(1, max_cas_attempts)

    def middleware(self):
        @web.middleware
        async def context_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
            return await self.handle(request, handler)

        return context_middleware

    async def handle(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        proxy_request = ProxyRequest.from_web_request(request)
        rev_id = revision_id_from_request(proxy_request, self._cluster_domain)

        try:
            revision = await self._get_revision(rev_id)
        except (NotFoundError, MetadataLookupError) as exc:
            logger.error("Error while getting revision %s: %s", rev_id, exc)
            return send_error(exc)

        try:
            policy = await self._session_policy(revision)
        except (NotFoundError, MetadataLookupError) as exc:
            logger.error("Error while getting service %s: %s", revision.service_name, exc)
            return send_error(exc)

        apply_deactivate_marker(proxy_request, policy)
        session_key = resolve_session_key(proxy_request, policy)
        if session_key:
            try:
                revision = await self.resolve_sticky_revision(session_key, revision)
            except StickyBindingConflictError as exc:
                logger.warning("%s", exc)
                return send_error(exc)

        with_request_context(
            request,
            RequestContext(
                revision=revision,
                revision_id=revision.id,
                request=proxy_request,
                session_policy=policy,
                session_key=session_key,
            ),
        )
        return await handler(request)

    async def _get_revision(self, rev_id: NamespacedName) -> Revision:
        if not rev_id.namespace or not rev_id.name:
            raise RevisionNotFoundError(rev_id.namespace, rev_id.name)
        return await self._lookup.lookup_revision(rev_id.namespace, rev_id.name)

    async def _session_policy(self, revision: Revision) -> SessionPolicy:
        service_name = revision.service_name
        if not service_name:
            return SessionPolicy()
        service = await self._lookup.lookup_service(revision.namespace, service_name)
        return SessionPolicy.from_annotations(service.annotations)

    async def resolve_sticky_revision(self, session_key: str, revision: Revision) -> Revision:
        """
        Return the revision the session is bound to, binding it to ``revision`` if unbound.

        Raises:
            StickyBindingConflictError: When the binding keeps pointing at
                revisions that vanish and the retry bound runs out.
        """
        if self._store is None:
            return revision

        key = REVISION_KEY_PREFIX + session_key
        desired = str(revision.id)
        expected = ""

        for _ in range(self._max_cas_attempts):
            try:
                result = await self._store.compare_and_swap(key, expected, desired)
            except AffinityStoreError as exc:
                logger.warning("Sticky revision for session %r unavailable; using %s (%s)", session_key, desired, exc)
                return revision

            if result.swapped or result.value == desired:
                return revision
            if not result.value:
                expected = ""
                continue

            sticky_id = NamespacedName.parse(result.value)
            if sticky_id is None:
                logger.warning("Ignoring malformed sticky revision %r for session %r", result.value, session_key)
                return revision

            try:
                sticky_revision = await self._lookup.lookup_revision(sticky_id.namespace, sticky_id.name)
            except NotFoundError as exc:
                logger.warning("Error while getting sticky revision %s: %s", result.value, exc)
                expected = result.value
                continue
            except MetadataLookupError as exc:
                logger.warning("Sticky revision %s unavailable; using %s (%s)", result.value, desired, exc)
                return revision

            logger.info("Overriding revision %s with %s", desired, sticky_id)
            return sticky_revision

        raise StickyBindingConflictError(session_key, self._max_cas_attempts)


__all__ = ["ContextHandler", "REVISION_KEY_PREFIX", "revision_id_from_request"]
