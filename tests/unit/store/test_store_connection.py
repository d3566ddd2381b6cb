"""Tests for the affinity store connection manager."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from activator.config.settings import StoreSettings
from activator.store import StoreConnectionManager, connection
from activator.store.connection import create_redis_client


def _settings(**overrides) -> StoreSettings:
    values = dict(
        host="redis.internal",
        port=6380,
        db=2,
        password=None,
        ssl=False,
        socket_timeout=1.5,
        socket_connect_timeout=0.5,
        operation_timeout=None,
        max_attempts=1,
    )
    values.update(overrides)
    return StoreSettings(**values)


@pytest.mark.asyncio
async def test_initialize_sets_client():
    client = MagicMock()
    factory = AsyncMock(return_value=client)
    manager = StoreConnectionManager(connection_factory=factory)

    await manager.initialize()
    assert manager.redis_client is client
    assert manager.is_open
    factory.assert_awaited_once()


@pytest.mark.asyncio
async def test_initialize_closes_existing_connection():
    first_client = MagicMock()
    first_client.aclose = AsyncMock()

    new_client = MagicMock()
    factory = AsyncMock(return_value=new_client)
    manager = StoreConnectionManager(connection_factory=factory)
    manager.redis_client = first_client

    await manager.initialize()
    first_client.aclose.assert_awaited_once()
    assert manager.redis_client is new_client


@pytest.mark.asyncio
async def test_initialize_propagates_connection_errors():
    factory = AsyncMock(side_effect=RedisConnectionError("refused"))
    manager = StoreConnectionManager(connection_factory=factory)

    with pytest.raises(RedisConnectionError):
        await manager.initialize()
    assert not manager.is_open


@pytest.mark.asyncio
async def test_cleanup_handles_close_errors():
    client = MagicMock()
    client.aclose = AsyncMock(side_effect=RedisError("fail"))
    manager = StoreConnectionManager(connection_factory=AsyncMock())
    manager.redis_client = client

    await manager.cleanup()
    assert manager.redis_client is None


def test_get_client_raises_when_uninitialized():
    manager = StoreConnectionManager(connection_factory=AsyncMock())

    with pytest.raises(ConnectionError, match="Affinity store client not initialized"):
        manager.get_client()


@pytest.mark.asyncio
async def test_create_redis_client_uses_settings(monkeypatch):
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    redis_cls = MagicMock(return_value=client)
    monkeypatch.setattr(connection.redis.asyncio, "Redis", redis_cls)

    result = await create_redis_client(_settings(password="secret", ssl=True))

    assert result is client
    kwargs = redis_cls.call_args.kwargs
    assert kwargs["host"] == "redis.internal"
    assert kwargs["port"] == 6380
    assert kwargs["db"] == 2
    assert kwargs["password"] == "secret"
    assert kwargs["ssl"] is True
    assert kwargs["decode_responses"] is True


@pytest.mark.asyncio
async def test_create_redis_client_closes_on_failed_ping(monkeypatch):
    client = MagicMock()
    client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
    client.aclose = AsyncMock()
    monkeypatch.setattr(connection.redis.asyncio, "Redis", MagicMock(return_value=client))

    with pytest.raises(RedisConnectionError):
        await create_redis_client(_settings())

    client.aclose.assert_awaited_once()
