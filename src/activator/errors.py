"""Error types shared across the activator routing core."""

from __future__ import annotations

from typing import Optional


class ActivatorError(RuntimeError):
    """Base class for all activator routing failures."""


class NotFoundError(ActivatorError):
    """Raised when a requested object does not exist."""


class RevisionNotFoundError(NotFoundError):
    """Raised when a revision cannot be found by the metadata lookup."""

    def __init__(self, namespace: str, name: str) -> None:
        super().__init__(f"revision {namespace}/{name} not found")
        self.namespace = namespace
        self.name = name


class ServiceNotFoundError(NotFoundError):
    """Raised when a service cannot be found by the metadata lookup."""

    def __init__(self, namespace: str, name: str) -> None:
        super().__init__(f"service {namespace}/{name} not found")
        self.namespace = namespace
        self.name = name


class StoreKeyNotFoundError(NotFoundError):
    """Raised when the affinity store holds no value for a key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"affinity store key {key!r} not found")
        self.key = key


class AffinityStoreError(ActivatorError):
    """Raised when an affinity store operation fails and should be surfaced to callers."""

    def __init__(
        self,
        operation: str,
        details: Optional[str] = None,
        original: Exception | None = None,
    ):
        message = f"Affinity store {operation} failed"
        if details:
            message = f"{message} ({details})"
        if original:
            message = f"{message}: {original}"
        super().__init__(message)
        self.operation = operation
        self.details = details
        self.original = original


class MetadataLookupError(ActivatorError):
    """Raised when revision or service metadata cannot be fetched for a transient reason."""


class StickyBindingConflictError(ActivatorError):
    """Raised when a sticky revision binding cannot be settled within the retry bound."""

    def __init__(self, session_key: str, attempts: int) -> None:
        super().__init__(f"sticky revision binding for session {session_key!r} not settled after {attempts} attempt(s)")
        self.session_key = session_key
        self.attempts = attempts


class NoTargetAvailableError(ActivatorError):
    """Raised when no backend could be acquired before the acquire deadline."""

    def __init__(self, revision: str, timeout: float) -> None:
        super().__init__(f"no backend of revision {revision} available within {timeout:.2f}s")
        self.revision = revision
        self.timeout = timeout


__all__ = [
    "ActivatorError",
    "AffinityStoreError",
    "MetadataLookupError",
    "NoTargetAvailableError",
    "NotFoundError",
    "RevisionNotFoundError",
    "ServiceNotFoundError",
    "StickyBindingConflictError",
    "StoreKeyNotFoundError",
]
