"""
Timeout + bounded retry with exponential backoff for outbound calls.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from trust_safety.lib.errors import ConcurrencyConflict, TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar('T')

RETRYABLE: Tuple[Type[BaseException], ...] = (
    TransientIOError,
    ConcurrencyConflict,
    asyncio.TimeoutError,
    ConnectionError,
)


async def retry_async(
    call: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 0.05,
    timeout: float = 2.0,
    operation: str = "call",
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE,
) -> T:
    """
    Run `call` with a per-attempt timeout, backing off 1x, 2x, 4x... base_delay
    between attempts. Raises TransientIOError once attempts are exhausted.
    """
    last_error: BaseException = TransientIOError(f"{operation} not attempted")

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except retry_on as e:
            last_error = e
            if attempt < attempts:
                delay = base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"{operation} failed (attempt {attempt}/{attempts}): {e!r}; retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

    raise TransientIOError(f"{operation} failed after {attempts} attempts: {last_error!r}") from last_error
