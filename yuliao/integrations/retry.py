"""
Retry with exponential backoff for content generator calls.

Every call to the language model goes through one RetryPolicy so the
backoff schedule and the retryable-error rule live in a single place.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from loguru import logger

from yuliao.core.errors import GenerationError

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Transient network failures and 5xx responses are retried; auth and parse errors are not."""
    return isinstance(error, GenerationError) and error.retryable


@dataclass
class RetryPolicy:
    """Configuration and driver for retry-with-backoff."""

    max_retries: int = 3  # Retries after the first attempt
    base_delay: float = 2.0  # Seconds; doubles every retry
    retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, retry_number: int) -> float:
        """Backoff before the given retry (1-based): base, 2*base, 4*base..."""
        return self.base_delay * (2 ** (retry_number - 1))

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "request") -> T:
        """
        Run an async operation, retrying transient failures.

        Args:
            operation: Zero-argument coroutine factory (called once per attempt)
            label: Name used in log messages

        Returns:
            The operation's result

        Raises:
            The last error once retries are exhausted, or immediately for
            errors the policy does not consider retryable.
        """
        retry_number = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if retry_number >= self.max_retries or not self.retryable(e):
                    raise
                retry_number += 1
                wait_time = self.delay_for(retry_number)
                logger.warning(
                    f"{label} failed ({e}). Retrying in {wait_time:.1f}s "
                    f"({self.max_retries - retry_number + 1} attempts left)"
                )
                await self.sleep(wait_time)


def retry_policy_from_settings() -> RetryPolicy:
    """Build the policy configured in settings."""
    from config import get_settings

    settings = get_settings()
    return RetryPolicy(
        max_retries=settings.retry_attempts,
        base_delay=settings.retry_base_delay_seconds,
    )
