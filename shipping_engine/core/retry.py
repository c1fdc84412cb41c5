"""
Caller-level retry for transient carrier failures

Carrier gateways never retry on their own: label creation is not safe to
repeat and tracking/rating retries belong to whoever owns the request budget.
Callers that want retries wrap the call in `with_retry`, which only retries
TransientCarrierFailure and uses exponential backoff with jitter.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from shipping_engine.core.config import settings
from shipping_engine.core.exceptions import TransientCarrierFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3             # Total attempts including the first
    base_delay: float = 1.0           # Base delay in seconds
    max_delay: float = 10.0           # Maximum delay cap
    exponential_base: float = 2.0     # Exponential backoff multiplier
    jitter_factor: float = 0.25       # Random jitter (0-1)

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        return cls(
            max_attempts=settings.SHIPPING_RETRY_MAX_ATTEMPTS,
            base_delay=settings.SHIPPING_RETRY_BASE_DELAY,
            max_delay=settings.SHIPPING_RETRY_MAX_DELAY,
        )


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay with exponential backoff and jitter.

    Formula: min(base * (exp_base ^ (attempt - 1)) +/- jitter, max_delay)
    """
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    jitter = delay * config.jitter_factor * (2 * random.random() - 1)
    return max(0.0, min(delay + jitter, config.max_delay))


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    context: str = "carrier request",
) -> T:
    """
    Await `fn()` and retry it on TransientCarrierFailure.

    Any other exception propagates immediately. After the last attempt the
    final TransientCarrierFailure is re-raised unchanged.
    """
    config = config or RetryConfig.from_settings()
    attempts = max(1, config.max_attempts)

    attempt = 1
    while True:
        try:
            return await fn()
        except TransientCarrierFailure as e:
            if attempt >= attempts:
                logger.error(f"{context} failed after {attempt} attempts: {e.message}")
                raise
            delay = calculate_backoff(attempt, config)
            logger.warning(
                f"{context} attempt {attempt}/{attempts} failed ({e.code}), "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
            attempt += 1
