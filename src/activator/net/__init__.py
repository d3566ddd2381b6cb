"""Backend tracking and load balancing."""

from .lb_policy import (
    FirstAvailablePolicy,
    LBPolicy,
    RandomChoice2Policy,
    RandomPolicy,
    RoundRobinPolicy,
    new_policy,
)
from .revision_targets import RevisionTargets, TargetRegistry
from .session_binding import RoutingContext, SessionBinder
from .tracker import PodTracker, noop

__all__ = [
    "FirstAvailablePolicy",
    "LBPolicy",
    "PodTracker",
    "RandomChoice2Policy",
    "RandomPolicy",
    "RevisionTargets",
    "RoundRobinPolicy",
    "RoutingContext",
    "SessionBinder",
    "TargetRegistry",
    "new_policy",
    "noop",
]
