"""Backend-level session stickiness on top of the affinity store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from activator.errors import AffinityStoreError, StoreKeyNotFoundError
from activator.session import ProxyRequest, SessionPolicy, resolve_session_key
from activator.store import AffinityStore

from .tracker import PodTracker

logger = logging.getLogger(__name__)


@dataclass
class RoutingContext:
    """Request-scoped input to a load balancing policy."""

    request: ProxyRequest = field(default_factory=ProxyRequest)
    session_policy: SessionPolicy = field(default_factory=SessionPolicy)
    resolved_session_key: Optional[str] = field(default=None, repr=False)

    @property
    def session_key(self) -> str:
        """The key given at construction, else resolved from the request once."""
        if self.resolved_session_key is None:
            self.resolved_session_key = resolve_session_key(self.request, self.session_policy)
        return self.resolved_session_key


class SessionBinder:
    """Looks up and establishes ``session key -> backend dest`` bindings.

    Store failures never fail the request: a lookup that cannot reach the store
    behaves as if the session were unbound, and an establish that cannot reach
    it lets the selected backend through.
    """

    def __init__(self, store: Optional[AffinityStore] = None) -> None:
        self._store = store

    @property
    def enabled(self) -> bool:
        return self._store is not None

    async def lookup(self, session_key: str, targets: Sequence[PodTracker]) -> Optional[PodTracker]:
        """Return the tracker the session is bound to, dropping the binding if it went stale."""
        if not session_key or self._store is None:
            return None

        try:
            dest = await self._store.get(session_key)
        except StoreKeyNotFoundError:
            return None
        except AffinityStoreError as exc:
            logger.warning("Session lookup for %r unavailable; routing unbound (%s)", session_key, exc)
            return None

        if not dest:
            return None
        for tracker in targets:
            if tracker.dest == dest:
                return tracker

        logger.info("Session %r bound to %s which is no longer a target; dropping binding", session_key, dest)
        try:
            await self._store.delete_if_equals(session_key, dest)
        except AffinityStoreError as exc:
            logger.warning("Failed to drop stale binding for session %r: %s", session_key, exc)
        return None

    async def establish(self, session_key: str, pick: PodTracker) -> bool:
        """Bind the session to ``pick`` unless another request bound it elsewhere first."""
        if not session_key or self._store is None:
            return True

        try:
            result = await self._store.compare_and_swap(session_key, "", pick.dest)
        except AffinityStoreError as exc:
            logger.warning("Could not bind session %r to %s; continuing unbound (%s)", session_key, pick.dest, exc)
            return True

        if result.swapped or result.value == pick.dest:
            return True
        logger.debug("Session %r already bound to %s; dropping pick %s", session_key, result.value, pick.dest)
        return False


__all__ = ["RoutingContext", "SessionBinder"]
