"""Per-backend state consulted by the load balancing policies."""

from __future__ import annotations

import threading
from typing import Callable, Optional, Tuple

Release = Callable[[], None]


def noop() -> None:
    """Release callback for paths that claimed nothing."""


class PodTracker:
    """Tracks outstanding requests and an approximate load weight for one backend.

    ``capacity`` of 0 or None means the backend accepts unbounded concurrency
    and ``reserve`` always succeeds. The weight is updated without locking;
    it only feeds relative comparisons in the power-of-two-choices policy, so
    lost updates are tolerated.
    """

    def __init__(self, dest: str, capacity: Optional[int] = None) -> None:
        self.dest = dest
        self.weight = 0
        self._capacity = capacity or 0
        self._in_flight = 0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"PodTracker(dest={self.dest!r}, capacity={self._capacity}, in_flight={self._in_flight})"

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def update_capacity(self, capacity: Optional[int]) -> None:
        """Change the concurrency cap; reservations already held stay valid."""
        with self._lock:
            self._capacity = capacity or 0

    def reserve(self) -> Tuple[Release, bool]:
        """Claim one unit of capacity without blocking.

        Returns a one-shot release callable and True on success, or
        ``(noop, False)`` when the backend is at its cap.
        """
        with self._lock:
            if self._capacity and self._in_flight >= self._capacity:
                return noop, False
            self._in_flight += 1
        return self._make_release(), True

    def _make_release(self) -> Release:
        released = threading.Event()

        def release() -> None:
            with self._lock:
                if released.is_set():
                    return
                released.set()
                self._in_flight -= 1

        return release

    def increase_weight(self) -> None:
        self.weight += 1

    def decrease_weight(self) -> None:
        self.weight -= 1

    def get_weight(self) -> int:
        return self.weight


__all__ = ["PodTracker", "Release", "noop"]
