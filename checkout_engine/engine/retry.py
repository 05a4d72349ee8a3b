"""
Retry and timeout handling for outbound payment provider calls.

Transient failures (429 rate limits, 5xx) are retried with exponential
backoff; permanent failures (4xx rejections) are raised immediately. The
whole attempt, retries included, is bounded by a timeout so a checkout
request never hangs on a slow gateway.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("checkout_engine.retry")

RETRIABLE_STATUS_CODES = {429, 502, 503, 504}
BASE_DELAY = 0.5
MAX_DELAY = 5.0


class ProviderError(Exception):
    """Base exception for payment provider errors."""

    def __init__(self, message: str, status_code: int = 500, retriable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable


class RateLimitError(ProviderError):
    """429 Too Many Requests from the payment provider."""

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message, status_code=429, retriable=True)
        self.retry_after = retry_after


class PermanentError(ProviderError):
    """Non-retriable error (e.g. card declined, bad request)."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code=status_code, retriable=False)


class ProviderTimeoutError(ProviderError):
    """The provider did not answer within the configured time budget."""

    def __init__(self, message: str = "Provider call timed out"):
        super().__init__(message, status_code=504, retriable=False)


def error_for_status(status_code: int, message: str) -> ProviderError:
    """Pick the exception type matching an HTTP status from a provider."""
    if status_code == 429:
        return RateLimitError(message)
    if status_code in RETRIABLE_STATUS_CODES or status_code >= 500:
        return ProviderError(message, status_code=status_code, retriable=True)
    return PermanentError(message, status_code=status_code)


async def with_retry(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    max_retries: int = 2,
    base_delay: float = BASE_DELAY,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with exponential backoff on retriable errors.

    Raises:
        ProviderError: On permanent failure or exhausted retries.
    """
    delay = base_delay

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except ProviderError as e:
            if not e.retriable or attempt >= max_retries:
                if e.retriable:
                    logger.error("Exhausted %d retries for provider call: %s", max_retries, e)
                raise

            sleep_for = min(delay, MAX_DELAY)
            if isinstance(e, RateLimitError) and e.retry_after:
                sleep_for = min(e.retry_after, MAX_DELAY)

            logger.warning(
                "Retriable error on attempt %d/%d: %s - sleeping %.1fs",
                attempt + 1,
                max_retries + 1,
                e,
                sleep_for,
            )
            await asyncio.sleep(sleep_for)
            delay = min(delay * 2, MAX_DELAY)

    raise ProviderError("Unknown error after retries")


async def call_provider(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    timeout: float,
    max_retries: int = 2,
    **kwargs: Any,
) -> Any:
    """Run ``with_retry`` under an overall timeout; a timeout is a provider failure."""
    try:
        return await asyncio.wait_for(
            with_retry(func, *args, max_retries=max_retries, **kwargs),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise ProviderTimeoutError(f"No provider response within {timeout:.1f}s") from e
