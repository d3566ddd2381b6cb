"""
Retry/backoff utilities for affinity store commands.

Store commands sit on the request hot path, so the default policy makes a
single attempt; deployments that prefer stickiness over latency can raise
``max_attempts``.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from .error_types import STORE_ERRORS

_ResultT = TypeVar("_ResultT")

DEFAULT_STORE_RETRY_MAX_ATTEMPTS = 1
DEFAULT_STORE_RETRY_MAX_DELAY = 0.5


@dataclass(frozen=True)
class StoreRetryPolicy:
    """Policy controlling retry/backoff behaviour."""

    max_attempts: int = DEFAULT_STORE_RETRY_MAX_ATTEMPTS
    initial_delay: float = 0.02
    max_delay: float = DEFAULT_STORE_RETRY_MAX_DELAY
    multiplier: float = 2.0
    jitter_ratio: float = 0.15
    retry_exceptions: Tuple[Type[BaseException], ...] = STORE_ERRORS


class StoreRetryError(RuntimeError):
    """Raised when a retryable store operation exhausts all attempts."""


_SECURE_RANDOM = random.SystemRandom()


async def execute_with_retry(
    operation: Callable[[int], Awaitable[_ResultT]],
    *,
    policy: StoreRetryPolicy,
    logger: logging.Logger,
    context: str,
) -> _ResultT:
    """
    Execute ``operation`` with a shared retry/backoff policy.

    Args:
        operation: Callable invoked for each attempt; receives the 1-based attempt index.
        policy: Retry timing configuration.
        logger: Logger used for default retry messages.
        context: Label describing the operation (used in logs).

    Returns:
        The value returned by ``operation``.

    Raises:
        StoreRetryError: When the operation exhausts all retry attempts.
    """

    delay = policy.initial_delay
    max_attempts = max(1, policy.max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation(attempt)
        except policy.retry_exceptions as exc:
            if attempt >= max_attempts:
                raise StoreRetryError(f"{context} failed after {attempt} attempt(s)") from exc

            sleep_for = min(delay, policy.max_delay)
            jitter = sleep_for * policy.jitter_ratio
            if jitter > 0:
                sleep_for += _SECURE_RANDOM.uniform(-jitter, jitter)
            sleep_for = max(0.0, sleep_for)

            logger.warning(
                "%s failed on attempt %s/%s; retrying in %.2fs (%s)",
                context,
                attempt,
                max_attempts,
                sleep_for,
                exc,
            )

            await asyncio.sleep(sleep_for)
            delay *= policy.multiplier

    raise StoreRetryError(f"{context} failed: unexpected retry loop exit")


__all__ = [
    "StoreRetryError",
    "StoreRetryPolicy",
    "execute_with_retry",
]
