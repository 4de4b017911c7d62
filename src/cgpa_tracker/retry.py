"""
Exponential backoff for backend calls.

Delay before retry n (0-based) is min(base_delay * 2**n, max_delay). Client
errors (HTTP 4xx) are not retried since repeating the request cannot help.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .errors import RemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")

    def delay_for(self, retry_index: int) -> float:
        return min(self.base_delay * (2 ** retry_index), self.max_delay)


READ_POLICY = RetryPolicy(attempts=3)
WRITE_POLICY = RetryPolicy(attempts=2)


def _is_retryable(error: RemoteError) -> bool:
    return error.status_code is None or not 400 <= error.status_code < 500


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "backend call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run operation until it succeeds or the policy's attempts are used up"""
    for attempt in range(policy.attempts):
        try:
            return await operation()
        except RemoteError as e:
            last_attempt = attempt == policy.attempts - 1
            if last_attempt or not _is_retryable(e):
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{policy.attempts}): {e}; retrying in {delay:.1f}s"
            )
            await sleep(delay)
    raise RuntimeError("retry loop exited without a result")


__all__ = ["RetryPolicy", "READ_POLICY", "WRITE_POLICY", "with_retry"]
