"""Affinity store: the shared key/value store holding session bindings."""

from .affinity_store import AffinityStore, CompareAndSwapResult
from .connection import StoreConnectionManager, create_redis_client
from .retry import StoreRetryError, StoreRetryPolicy

__all__ = [
    "AffinityStore",
    "CompareAndSwapResult",
    "StoreConnectionManager",
    "StoreRetryError",
    "StoreRetryPolicy",
    "create_redis_client",
]
