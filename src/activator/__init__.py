"""Request routing with session affinity for serverless revisions."""

from .errors import (
    ActivatorError,
    AffinityStoreError,
    MetadataLookupError,
    NoTargetAvailableError,
    NotFoundError,
    StickyBindingConflictError,
)

__all__ = [
    "ActivatorError",
    "AffinityStoreError",
    "MetadataLookupError",
    "NoTargetAvailableError",
    "NotFoundError",
    "StickyBindingConflictError",
]
