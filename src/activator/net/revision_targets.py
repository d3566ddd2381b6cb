"""Current target set of one revision and the acquire loop around a policy."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from typing import AsyncIterator, Callable, Dict, Hashable, Iterable, Optional, Tuple

from activator.errors import NoTargetAvailableError

from .lb_policy import LBPolicy, Selection
from .session_binding import RoutingContext
from .tracker import PodTracker, Release

logger = logging.getLogger(__name__)

INITIAL_RETRY_DELAY = 0.005
MAX_RETRY_DELAY = 0.1


class RevisionTargets:
    """Holds the backend trackers of a revision as kept current by an external watcher.

    Each selection sees an immutable snapshot; ``update_targets`` swaps the
    whole snapshot.
    """

    def __init__(
        self,
        revision: str,
        policy: LBPolicy,
        trackers: Optional[Iterable[PodTracker]] = None,
        *,
        initial_retry_delay: float = INITIAL_RETRY_DELAY,
        max_retry_delay: float = MAX_RETRY_DELAY,
    ) -> None:
        self.revision = revision
        self._policy = policy
        self._lock = threading.Lock()
        self._targets: Tuple[PodTracker, ...] = tuple(trackers or ())
        self._initial_retry_delay = initial_retry_delay
        self._max_retry_delay = max_retry_delay

    @property
    def targets(self) -> Tuple[PodTracker, ...]:
        with self._lock:
            return self._targets

    def update_targets(self, trackers: Iterable[PodTracker]) -> None:
        snapshot = tuple(trackers)
        with self._lock:
            self._targets = snapshot
        logger.debug("Revision %s now has %d target(s)", self.revision, len(snapshot))

    async def try_select(self, ctx: RoutingContext) -> Selection:
        """Run the policy once against the current snapshot."""
        return await self._policy(ctx, self.targets)

    async def acquire(self, ctx: RoutingContext, timeout: float) -> Tuple[Release, PodTracker]:
        """
        Retry the policy with backoff until it yields a target.

        Requests that lost a session binding race come back here and, on the
        next attempt, find the winner's binding.

        Raises:
            NoTargetAvailableError: When ``timeout`` seconds pass without a target.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        delay = self._initial_retry_delay

        while True:
            release, pick = await self.try_select(ctx)
            if pick is not None:
                return release, pick

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise NoTargetAvailableError(self.revision, timeout)
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * 2, self._max_retry_delay)

    @contextlib.asynccontextmanager
    async def route(self, ctx: RoutingContext, timeout: float) -> AsyncIterator[PodTracker]:
        """Acquire a target for the duration of the block and release it afterwards."""
        release, pick = await self.acquire(ctx, timeout)
        try:
            yield pick
        finally:
            release()


class TargetRegistry:
    """Per-revision ``RevisionTargets``, each with its own policy instance.

    ``capacity`` is the per-backend concurrency applied to trackers built by
    ``update_dests``; 0 means unbounded.
    """

    def __init__(self, policy_factory: Callable[[], LBPolicy], *, capacity: int = 0) -> None:
        self._policy_factory = policy_factory
        self._capacity = capacity
        self._lock = threading.Lock()
        self._revisions: Dict[Hashable, RevisionTargets] = {}

    def get(self, revision_id: Hashable) -> Optional[RevisionTargets]:
        with self._lock:
            return self._revisions.get(revision_id)

    def update(self, revision_id: Hashable, trackers: Iterable[PodTracker]) -> RevisionTargets:
        """Replace the target set of a revision, creating its entry on first sight."""
        with self._lock:
            entry = self._revisions.get(revision_id)
            if entry is None:
                entry = RevisionTargets(str(revision_id), self._policy_factory())
                self._revisions[revision_id] = entry
        entry.update_targets(trackers)
        return entry

    def update_dests(self, revision_id: Hashable, dests: Iterable[str]) -> RevisionTargets:
        """Replace the target set from backend addresses.

        Trackers of addresses already present are kept so their outstanding
        reservations stay accounted for.
        """
        current = self.get(revision_id)
        known = {tracker.dest: tracker for tracker in current.targets} if current is not None else {}
        trackers = []
        for dest in dests:
            tracker = known.get(dest)
            if tracker is None:
                tracker = PodTracker(dest, capacity=self._capacity)
            else:
                tracker.update_capacity(self._capacity)
            trackers.append(tracker)
        return self.update(revision_id, trackers)

    def remove(self, revision_id: Hashable) -> None:
        with self._lock:
            self._revisions.pop(revision_id, None)


__all__ = ["RevisionTargets", "TargetRegistry"]
