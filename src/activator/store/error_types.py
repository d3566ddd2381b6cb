"""
Shared exception groupings for affinity store modules.
"""

import asyncio
from typing import Tuple, Type

from redis.exceptions import RedisError

ExceptionTuple = Tuple[Type[BaseException], ...]

# Store commands may surface redis-py errors along with generic timeout/socket failures.
STORE_ERRORS: ExceptionTuple = (RedisError, asyncio.TimeoutError, OSError)

__all__ = ["ExceptionTuple", "STORE_ERRORS"]
