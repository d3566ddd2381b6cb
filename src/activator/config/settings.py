from __future__ import annotations

"""Configuration dataclasses for the activator and its affinity store."""


from dataclasses import dataclass
from functools import lru_cache

from . import ConfigurationError, env_bool, env_float, env_int, env_seconds, env_str

DEFAULT_REDIS_HOST = "redis"
DEFAULT_REDIS_PORT = 6379
DEFAULT_SOCKET_TIMEOUT_SECONDS = 5.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0

DEFAULT_LB_POLICY = "first-available"
DEFAULT_MAX_CAS_ATTEMPTS = 5
DEFAULT_CLUSTER_DOMAIN = "cluster.local"
DEFAULT_ACQUIRE_TIMEOUT_SECONDS = 10.0
DEFAULT_HTTP_PORT = 8012

KNOWN_LB_POLICIES = ("random", "random-choice-2", "first-available", "round-robin")


@dataclass(frozen=True)
class StoreSettings:
    host: str
    port: int
    db: int
    password: str | None
    ssl: bool
    socket_timeout: float | None
    socket_connect_timeout: float | None
    operation_timeout: float | None
    max_attempts: int


@dataclass(frozen=True)
class ActivatorSettings:
    lb_policy: str
    container_concurrency: int
    max_cas_attempts: int
    cluster_domain: str
    acquire_timeout: float
    http_port: int


@lru_cache(maxsize=1)
def get_store_settings() -> StoreSettings:
    host = env_str("REDIS_HOST", or_value=DEFAULT_REDIS_HOST)
    port = env_int("REDIS_PORT", or_value=DEFAULT_REDIS_PORT)
    db = env_int("REDIS_DB", or_value=0)
    if db is None or db < 0:
        raise ConfigurationError.invalid_value("REDIS_DB", db, "Database index must be non-negative")

    max_attempts = env_int("AFFINITY_STORE_MAX_ATTEMPTS", or_value=1)
    if max_attempts is None or max_attempts < 1:
        raise ConfigurationError.invalid_value("AFFINITY_STORE_MAX_ATTEMPTS", max_attempts, "Must be at least 1")

    return StoreSettings(
        host=str(host),
        port=int(port or DEFAULT_REDIS_PORT),
        db=db,
        password=env_str("REDIS_PASSWORD", allow_blank=True),
        ssl=bool(env_bool("REDIS_SSL", or_value=False)),
        socket_timeout=env_float("REDIS_SOCKET_TIMEOUT", or_value=DEFAULT_SOCKET_TIMEOUT_SECONDS),
        socket_connect_timeout=env_float("REDIS_SOCKET_CONNECT_TIMEOUT", or_value=DEFAULT_CONNECT_TIMEOUT_SECONDS),
        operation_timeout=env_seconds("AFFINITY_STORE_OPERATION_TIMEOUT"),
        max_attempts=max_attempts,
    )


@lru_cache(maxsize=1)
def get_activator_settings() -> ActivatorSettings:
    lb_policy = str(env_str("ACTIVATOR_LB_POLICY", or_value=DEFAULT_LB_POLICY))
    if lb_policy not in KNOWN_LB_POLICIES:
        raise ConfigurationError.invalid_value(
            "ACTIVATOR_LB_POLICY", lb_policy, f"Expected one of {', '.join(KNOWN_LB_POLICIES)}"
        )

    container_concurrency = env_int("ACTIVATOR_CONTAINER_CONCURRENCY", or_value=0)
    if container_concurrency is None or container_concurrency < 0:
        raise ConfigurationError.invalid_value("ACTIVATOR_CONTAINER_CONCURRENCY", container_concurrency, "Must be non-negative")

    max_cas_attempts = env_int("ACTIVATOR_MAX_CAS_ATTEMPTS", or_value=DEFAULT_MAX_CAS_ATTEMPTS)
    if max_cas_attempts is None or max_cas_attempts < 1:
        raise ConfigurationError.invalid_value("ACTIVATOR_MAX_CAS_ATTEMPTS", max_cas_attempts, "Must be at least 1")

    return ActivatorSettings(
        lb_policy=lb_policy,
        container_concurrency=container_concurrency,
        max_cas_attempts=max_cas_attempts,
        cluster_domain=str(env_str("ACTIVATOR_CLUSTER_DOMAIN", or_value=DEFAULT_CLUSTER_DOMAIN)),
        acquire_timeout=float(env_seconds("ACTIVATOR_ACQUIRE_TIMEOUT_SECONDS", or_value=DEFAULT_ACQUIRE_TIMEOUT_SECONDS)),
        http_port=int(env_int("ACTIVATOR_HTTP_PORT", or_value=DEFAULT_HTTP_PORT) or DEFAULT_HTTP_PORT),
    )


__all__ = [
    "ActivatorSettings",
    "KNOWN_LB_POLICIES",
    "StoreSettings",
    "get_activator_settings",
    "get_store_settings",
]
