"""
Session affinity store backed by Redis.

Bindings are plain string keys. Conditional delete and compare-and-swap run
as Lua scripts so Redis applies them atomically; concurrent first requests
for the same session therefore agree on a single winner.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from activator.config.settings import StoreSettings, get_store_settings
from activator.errors import AffinityStoreError, StoreKeyNotFoundError

from .connection import StoreConnectionManager, create_redis_client
from .retry import StoreRetryError, StoreRetryPolicy, execute_with_retry
from .typing import RedisClient, ensure_awaitable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DELETE_IF_EQUALS_SCRIPT = (
    "if redis.call('GET', KEYS[1]) == ARGV[1] then "
    "redis.call('DEL', KEYS[1]); return 1 "
    "else return 0 end"
)

# An empty expected value also matches a missing key.
COMPARE_AND_SWAP_SCRIPT = (
    "local v = redis.call('GET', KEYS[1]); "
    "if v == ARGV[1] or (v == false and ARGV[1] == '') then "
    "redis.call('SET', KEYS[1], ARGV[2]); return {1, ARGV[2]} end; "
    "if v == false then return {0, ''} end; "
    "return {0, v}"
)


@dataclass(frozen=True)
class CompareAndSwapResult:
    """Outcome of a compare-and-swap: whether it swapped and the value now stored."""

    swapped: bool
    value: str


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class AffinityStore:
    """Get/Set/DeleteIfEquals/CompareAndSwap against the shared session store."""

    def __init__(
        self,
        connection: Optional[StoreConnectionManager] = None,
        *,
        retry_policy: Optional[StoreRetryPolicy] = None,
        operation_timeout: Optional[float] = None,
    ) -> None:
        self._connection = connection or StoreConnectionManager()
        self._retry_policy = retry_policy or StoreRetryPolicy()
        self._operation_timeout = operation_timeout

    @classmethod
    def from_settings(cls, settings: Optional[StoreSettings] = None) -> "AffinityStore":
        if settings is None:
            settings = get_store_settings()
        connection = StoreConnectionManager(functools.partial(create_redis_client, settings))
        return cls(
            connection,
            retry_policy=StoreRetryPolicy(max_attempts=settings.max_attempts),
            operation_timeout=settings.operation_timeout,
        )

    @property
    def is_open(self) -> bool:
        return self._connection.is_open

    async def open(self) -> None:
        await self._connection.initialize()
        logger.info("Affinity store opened")

    async def close(self) -> None:
        await self._connection.cleanup()
        logger.info("Affinity store closed")

    async def get(self, key: str) -> str:
        """
        Return the value bound to ``key``.

        Raises:
            StoreKeyNotFoundError: When the key holds no value.
            AffinityStoreError: When the store cannot be reached.
        """
        value = await self._run("GET", lambda client: ensure_awaitable(client.get(key)))
        if value is None:
            raise StoreKeyNotFoundError(key)
        return _decode(value)

    async def set(self, key: str, value: str) -> None:
        await self._run("SET", lambda client: ensure_awaitable(client.set(key, value)))

    async def delete_if_equals(self, key: str, expected: str) -> int:
        """Delete ``key`` only while it still holds ``expected``; returns the number of keys deleted."""
        deleted = await self._run(
            "DELETE_IF_EQUALS",
            lambda client: ensure_awaitable(client.eval(DELETE_IF_EQUALS_SCRIPT, 1, key, expected)),
        )
        return int(deleted)

    async def compare_and_swap(self, key: str, expected: str, desired: str) -> CompareAndSwapResult:
        """
        Atomically replace ``expected`` with ``desired`` under ``key``.

        An empty ``expected`` matches an unset key. When the swap does not
        happen the returned value is what the key actually holds ("" if unset).
        """
        reply = await self._run(
            "COMPARE_AND_SWAP",
            lambda client: ensure_awaitable(client.eval(COMPARE_AND_SWAP_SCRIPT, 1, key, expected, desired)),
        )
        swapped, value = reply
        return CompareAndSwapResult(swapped=bool(int(swapped)), value=_decode(value))

    async def _run(self, operation: str, command: Callable[[RedisClient], Awaitable[T]]) -> T:
        try:
            client = self._connection.get_client()
        except ConnectionError as exc:
            raise AffinityStoreError(operation, "store not open", exc) from exc

        async def attempt(_: int) -> T:
            if self._operation_timeout is None:
                return await command(client)
            return await asyncio.wait_for(command(client), timeout=self._operation_timeout)

        try:
            return await execute_with_retry(
                attempt,
                policy=self._retry_policy,
                logger=logger,
                context=f"affinity store {operation}",
            )
        except StoreRetryError as exc:
            original = exc.__cause__ if isinstance(exc.__cause__, Exception) else exc
            raise AffinityStoreError(operation, original=original) from exc


__all__ = [
    "COMPARE_AND_SWAP_SCRIPT",
    "DELETE_IF_EQUALS_SCRIPT",
    "AffinityStore",
    "CompareAndSwapResult",
]
