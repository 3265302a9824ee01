"""Retry logic for failed operations."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from knowledge_hub.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    delay: Optional[float] = None,
    backoff_multiplier: Optional[float] = None,
    exceptions: tuple = (Exception,),
    description: str = "operation",
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async function to retry; called afresh on every attempt.
        max_retries: Maximum number of retry attempts after the first.
        delay: Initial delay in seconds.
        backoff_multiplier: Multiplier for exponential backoff.
        exceptions: Tuple of exceptions to catch and retry.
        description: Label used in log messages.

    Returns:
        Result of the function call.

    Raises:
        Last exception if all retries fail.
    """
    max_retries = settings.max_retries if max_retries is None else max_retries
    delay = settings.retry_delay_seconds if delay is None else delay
    backoff_multiplier = (
        settings.retry_backoff_multiplier if backoff_multiplier is None else backoff_multiplier
    )

    last_exception = None

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except exceptions as e:
            last_exception = e
            if attempt < max_retries:
                wait_time = delay * (backoff_multiplier ** attempt)
                logger.warning(
                    f"{description}: attempt {attempt + 1}/{max_retries + 1} failed: {str(e)}. "
                    f"Retrying in {wait_time:.2f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(
                    f"{description}: all {max_retries + 1} attempts failed. Last error: {str(e)}")

    raise last_exception
