"""
Load balancing policies.

A policy picks a target from ``targets`` and returns ``(release, tracker)``,
or ``(noop, None)`` when nothing can be acquired right now and the caller
should requeue. The ``targets`` sequence is a snapshot that does not change
during the call, although the trackers in it may.

Capacity-aware policies honour session stickiness: a session already bound
to a current target gets that target back with a no-op release, bypassing
reservation and weight bookkeeping.
"""

from __future__ import annotations

import logging
import random
import threading
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

from activator.config.settings import KNOWN_LB_POLICIES

from .session_binding import RoutingContext, SessionBinder
from .tracker import PodTracker, Release, noop

logger = logging.getLogger(__name__)

Selection = Tuple[Release, Optional[PodTracker]]


class LBPolicy(ABC):
    """Base class for load balancing policies."""

    def __init__(self, binder: Optional[SessionBinder] = None) -> None:
        self._binder = binder or SessionBinder()

    @abstractmethod
    async def __call__(self, ctx: RoutingContext, targets: Sequence[PodTracker]) -> Selection: ...

    def name(self) -> str:
        return self.__class__.__name__

    async def _sticky_pick(self, ctx: RoutingContext, targets: Sequence[PodTracker]) -> Optional[PodTracker]:
        return await self._binder.lookup(ctx.session_key, targets)

    async def _commit(self, ctx: RoutingContext, pick: PodTracker, release: Release) -> Selection:
        """Bind the session to a reserved pick, giving the reservation back if that fails."""
        try:
            bound = await self._binder.establish(ctx.session_key, pick)
        except BaseException:
            release()
            raise
        if not bound:
            release()
            return noop, None
        return release, pick


class RandomPolicy(LBPolicy):
    """Uniformly random pick with no capacity check and no stickiness.

    Approximates what an iptables-based Service does.
    """

    async def __call__(self, ctx: RoutingContext, targets: Sequence[PodTracker]) -> Selection:
        if not targets:
            return noop, None
        return noop, targets[random.randrange(len(targets))]


class RandomChoice2Policy(LBPolicy):
    """Power of two choices over the approximate tracker weights.

    Meant for backends without a concurrency cap, so picks never reserve.
    """

    async def __call__(self, ctx: RoutingContext, targets: Sequence[PodTracker]) -> Selection:
        pick = await self._sticky_pick(ctx, targets)
        if pick is not None:
            return noop, pick

        n = len(targets)
        if n == 0:
            return noop, None
        if n == 1:
            return await self._take(ctx, targets[0])

        r1, r2 = 0, 1
        if n > 2:
            r1, r2 = random.randrange(n), random.randrange(n - 1)
            # Shift r2 so it ranges over [0, r1) and (r1, n).
            if r2 >= r1:
                r2 += 1

        pick, alt = targets[r1], targets[r2]
        # Unlocked reads; a stale weight only skews the choice.
        if pick.get_weight() > alt.get_weight():
            pick = alt
        return await self._take(ctx, pick)

    async def _take(self, ctx: RoutingContext, pick: PodTracker) -> Selection:
        if not await self._binder.establish(ctx.session_key, pick):
            return noop, None
        pick.increase_weight()
        return pick.decrease_weight, pick


class FirstAvailablePolicy(LBPolicy):
    """Picks the first target, in order, that has capacity right now."""

    async def __call__(self, ctx: RoutingContext, targets: Sequence[PodTracker]) -> Selection:
        pick = await self._sticky_pick(ctx, targets)
        if pick is not None:
            return noop, pick

        for tracker in targets:
            release, ok = tracker.reserve()
            if ok:
                return await self._commit(ctx, tracker, release)
        return noop, None


class RoundRobinPolicy(LBPolicy):
    """Cycles through targets, skipping those at capacity.

    The cursor is shared by every caller and guarded by a lock that is held
    only for the scan, never across an affinity store call.
    """

    def __init__(self, binder: Optional[SessionBinder] = None, *, start_index: int = 0) -> None:
        super().__init__(binder)
        self._lock = threading.Lock()
        self._idx = start_index

    @property
    def cursor(self) -> int:
        with self._lock:
            return self._idx

    async def __call__(self, ctx: RoutingContext, targets: Sequence[PodTracker]) -> Selection:
        pick = await self._sticky_pick(ctx, targets)
        if pick is not None:
            return noop, pick

        chosen: Optional[PodTracker] = None
        release: Release = noop
        with self._lock:
            n = len(targets)
            # The target set may have shrunk since the last call.
            if self._idx >= n:
                self._idx = 0
            for i in range(n):
                p = (self._idx + i) % n
                release, ok = targets[p].reserve()
                if ok:
                    self._idx = p + 1
                    chosen = targets[p]
                    break

        if chosen is None:
            return noop, None
        return await self._commit(ctx, chosen, release)


def new_policy(name: str, binder: Optional[SessionBinder] = None) -> LBPolicy:
    """Build the policy registered under ``name``."""
    if name == "random":
        return RandomPolicy(binder)
    if name == "random-choice-2":
        return RandomChoice2Policy(binder)
    if name == "first-available":
        return FirstAvailablePolicy(binder)
    if name == "round-robin":
        return RoundRobinPolicy(binder)
    raise ValueError(f"Unknown load balancing policy {name!r}; expected one of {', '.join(KNOWN_LB_POLICIES)}")


__all__ = [
    "FirstAvailablePolicy",
    "LBPolicy",
    "RandomChoice2Policy",
    "RandomPolicy",
    "RoundRobinPolicy",
    "Selection",
    "new_policy",
]
