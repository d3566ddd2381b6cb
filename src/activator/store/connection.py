"""Affinity store connection lifecycle management."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio

from activator.config.settings import StoreSettings, get_store_settings

from .error_types import STORE_ERRORS
from .typing import RedisClient, ensure_awaitable

logger = logging.getLogger(__name__)


async def create_redis_client(settings: Optional[StoreSettings] = None) -> RedisClient:
    """
    Build a Redis client from store settings and verify it answers PING.

    Responses are decoded so every store command deals in ``str`` values.
    """
    if settings is None:
        settings = get_store_settings()

    client_kwargs = {
        "host": settings.host,
        "port": settings.port,
        "db": settings.db,
        "socket_timeout": settings.socket_timeout,
        "socket_connect_timeout": settings.socket_connect_timeout,
        "decode_responses": True,
    }
    if settings.password:
        client_kwargs["password"] = settings.password
    if settings.ssl:
        client_kwargs["ssl"] = True

    client = redis.asyncio.Redis(**client_kwargs)
    try:
        await ensure_awaitable(client.ping())
    except STORE_ERRORS:
        await client.aclose()
        raise
    logger.debug("Affinity store connection established to %s:%s", settings.host, settings.port)
    return client


class StoreConnectionManager:
    """Manages a Redis client lifecycle for the affinity store."""

    def __init__(
        self,
        connection_factory: Optional[Callable[[], Awaitable[RedisClient]]] = None,
        *,
        not_initialized_message: str = "Affinity store client not initialized",
    ):
        self.redis_client: Optional[RedisClient] = None
        self._connection_factory = connection_factory or create_redis_client
        self._not_initialized_message = not_initialized_message

    @property
    def is_open(self) -> bool:
        return self.redis_client is not None

    async def initialize(self) -> None:
        """
        Open a fresh connection, closing any previous client first.

        A client created on another event loop cannot be reused, so an existing
        client is always replaced.
        """
        if self.redis_client is not None:
            try:
                await ensure_awaitable(self.redis_client.aclose())
            except STORE_ERRORS:
                logger.warning("Error closing existing affinity store connection")
            finally:
                self.redis_client = None

        try:
            self.redis_client = await self._connection_factory()
        except STORE_ERRORS as exc:
            logger.exception("Affinity store connection failed: %s", type(exc).__name__)
            raise

    async def cleanup(self) -> None:
        """Close the Redis connection to prevent resource leaks."""
        if self.redis_client is not None:
            try:
                await ensure_awaitable(self.redis_client.aclose())
            except STORE_ERRORS:
                logger.warning("Error closing affinity store connection during cleanup")
            finally:
                self.redis_client = None

    def get_client(self) -> RedisClient:
        """Return the active Redis client or raise if uninitialized."""
        if self.redis_client is None:
            raise ConnectionError(self._not_initialized_message)
        return self.redis_client


__all__ = ["StoreConnectionManager", "create_redis_client"]
