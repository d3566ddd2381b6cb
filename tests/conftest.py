"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest

from activator.store import AffinityStore, StoreConnectionManager
from activator.store.affinity_store import COMPARE_AND_SWAP_SCRIPT, DELETE_IF_EQUALS_SCRIPT


class FakeRedis:
    """In-memory Redis mock understanding the affinity store's Lua scripts."""

    def __init__(self, *, yield_on_read: bool = False):
        self._data: dict[str, str] = {}
        self.yield_on_read = yield_on_read
        self.closed = False
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        """Get a string value, optionally yielding first so concurrent tasks interleave."""
        self.calls.append(("get", (key,)))
        if self.yield_on_read:
            await asyncio.sleep(0)
        return self._data.get(key)

    async def set(self, key: str, value: str | bytes) -> bool:
        self.calls.append(("set", (key, value)))
        self._data[key] = value if isinstance(value, str) else value.decode()
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for k in keys:
            if self._data.pop(k, None) is not None:
                deleted += 1
        return deleted

    async def eval(self, script: str, numkeys: int, *keys_and_args: str) -> Any:
        """Run one of the known scripts atomically (no await between read and write)."""
        keys, args = keys_and_args[:numkeys], keys_and_args[numkeys:]
        self.calls.append(("eval", tuple(keys_and_args)))
        if script == DELETE_IF_EQUALS_SCRIPT:
            if self._data.get(keys[0]) == args[0]:
                del self._data[keys[0]]
                return 1
            return 0
        if script == COMPARE_AND_SWAP_SCRIPT:
            current = self._data.get(keys[0])
            expected, desired = args
            if current == expected or (current is None and expected == ""):
                self._data[keys[0]] = desired
                return [1, desired]
            return [0, current if current is not None else ""]
        raise NotImplementedError(f"FakeRedis does not understand script {script!r}")

    async def aclose(self) -> None:
        self.closed = True

    def dump_string(self, key: str) -> str | None:
        """Dump contents of a string (test helper)."""
        return self._data.get(key)

    def command_count(self, name: str) -> int:
        return sum(1 for command, _ in self.calls if command == name)


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Provide a fake Redis instance."""
    return FakeRedis()


@pytest.fixture
def affinity_store(fake_redis: FakeRedis) -> AffinityStore:
    """Provide an already-open affinity store backed by ``fake_redis``."""
    manager = StoreConnectionManager(AsyncMock(return_value=fake_redis))
    manager.redis_client = fake_redis
    return AffinityStore(manager)


@pytest.fixture
def fake_redis_cls() -> type[FakeRedis]:
    """Expose the FakeRedis class for tests that need extra instances."""
    return FakeRedis
