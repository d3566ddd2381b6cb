"""Tests for RevisionTargets and TargetRegistry."""

import asyncio

import pytest

from activator.errors import NoTargetAvailableError
from activator.metadata import NamespacedName
from activator.net.lb_policy import FirstAvailablePolicy, RoundRobinPolicy
from activator.net.revision_targets import RevisionTargets, TargetRegistry
from activator.net.session_binding import RoutingContext
from activator.net.tracker import PodTracker


@pytest.mark.asyncio
async def test_route_releases_capacity_after_block():
    tracker = PodTracker("10.0.0.1", capacity=1)
    targets = RevisionTargets("default/rev", FirstAvailablePolicy(), [tracker])

    async with targets.route(RoutingContext(), timeout=0.1) as pick:
        assert pick is tracker
        assert tracker.in_flight == 1

    assert tracker.in_flight == 0


@pytest.mark.asyncio
async def test_acquire_times_out_without_capacity():
    tracker = PodTracker("10.0.0.1", capacity=1)
    tracker.reserve()
    targets = RevisionTargets("default/rev", FirstAvailablePolicy(), [tracker], initial_retry_delay=0.001)

    with pytest.raises(NoTargetAvailableError, match="default/rev"):
        await targets.acquire(RoutingContext(), timeout=0.02)


@pytest.mark.asyncio
async def test_acquire_waits_for_capacity_to_free_up():
    tracker = PodTracker("10.0.0.1", capacity=1)
    release, _ = tracker.reserve()
    targets = RevisionTargets("default/rev", FirstAvailablePolicy(), [tracker], initial_retry_delay=0.001)

    async def free_later() -> None:
        await asyncio.sleep(0.01)
        release()

    _, (second_release, pick) = await asyncio.gather(free_later(), targets.acquire(RoutingContext(), timeout=1.0))

    assert pick is tracker
    second_release()
    assert tracker.in_flight == 0


@pytest.mark.asyncio
async def test_update_targets_replaces_snapshot():
    targets = RevisionTargets("default/rev", RoundRobinPolicy())
    assert targets.targets == ()

    trackers = [PodTracker("a"), PodTracker("b")]
    targets.update_targets(trackers)
    assert targets.targets == tuple(trackers)

    targets.update_targets(trackers[:1])
    _, pick = await targets.try_select(RoutingContext())
    assert pick is trackers[0]


def test_registry_creates_one_policy_per_revision():
    created = []

    def factory():
        policy = RoundRobinPolicy()
        created.append(policy)
        return policy

    registry = TargetRegistry(factory)
    rev = NamespacedName("default", "rev-1")

    first = registry.update(rev, [PodTracker("a")])
    second = registry.update(rev, [PodTracker("b")])

    assert first is second
    assert len(created) == 1
    assert registry.get(rev) is first
    assert [t.dest for t in first.targets] == ["b"]

    registry.remove(rev)
    assert registry.get(rev) is None


def test_registry_update_dests_keeps_known_trackers():
    registry = TargetRegistry(RoundRobinPolicy, capacity=2)
    rev = NamespacedName("default", "rev-1")

    first = registry.update_dests(rev, ["a", "b"])
    tracker_a = first.targets[0]
    tracker_a.reserve()

    second = registry.update_dests(rev, ["c", "a"])

    assert [t.dest for t in second.targets] == ["c", "a"]
    assert second.targets[1] is tracker_a
    assert tracker_a.in_flight == 1
    assert all(t.capacity == 2 for t in second.targets)
