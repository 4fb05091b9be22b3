"""
Retry policy for GitHub API calls.

Provides:
- RetryConfig: attempts and backoff settings
- with_retry: async wrapper built on tenacity
- is_retryable_error: transient vs. permanent error classification
- is_rate_limit_response / get_retry_after_seconds: rate-limit inspection

Only transient failures are retried (network errors, timeouts, HTTP 5xx).
Client errors, rate limiting included, fail immediately: retrying a 403/429
inside the same window only burns quota.

Usage:
    from collectors.retry_strategy import with_retry, RetryConfig

    async def fetch_page():
        response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    data = await with_retry(fetch_page, RetryConfig())
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3  # Total attempts, including the first
    initial_delay: float = 2.0  # Wait before the second attempt
    multiplier: float = 2.0  # Growth factor per further attempt
    backoff_max: float = 30.0  # Maximum wait time in seconds
    jitter: float = 0.0  # Upper bound of random seconds added per wait

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def build_wait(self):
        """
        tenacity wait strategy: initial_delay * multiplier ** (n - 1) before
        retry n, capped at backoff_max, plus up to `jitter` random seconds.
        """
        wait = wait_exponential(
            multiplier=self.initial_delay,
            exp_base=self.multiplier,
            max=self.backoff_max,
        )
        if self.jitter > 0:
            wait = wait + wait_random(0, self.jitter)
        return wait


def is_retryable_error(error: BaseException) -> bool:
    """
    Determine if an error is transient.

    Retryable errors:
    - ConnectionError, TimeoutError / asyncio.TimeoutError
    - httpx transport errors (connect, read, timeouts)
    - HTTP 5xx (server errors)

    Non-retryable errors:
    - HTTP 4xx, including 403/429 rate limiting
    - ValueError, TypeError, etc. - programming errors

    Args:
        error: The exception to classify

    Returns:
        True if the error should be retried
    """
    # Network errors
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    if isinstance(error, httpx.TransportError):
        return True

    # HTTP errors
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return 500 <= status < 600

    return False


def is_rate_limit_response(response: httpx.Response) -> bool:
    """
    True if GitHub refused the request because of rate limiting.

    429 always; 403 only with an exhausted quota header or a Retry-After
    (secondary rate limit). Other 403s are permission errors.
    """
    if response.status_code == 429:
        return True
    if response.status_code == 403:
        if response.headers.get("X-RateLimit-Remaining") == "0":
            return True
        if "Retry-After" in response.headers:
            return True
    return False


def get_retry_after_seconds(error: BaseException) -> Optional[float]:
    """
    Extract Retry-After header value from an HTTP error.

    Args:
        error: The exception (typically httpx.HTTPStatusError)

    Returns:
        Wait time in seconds, or None if header not present
    """
    if not isinstance(error, httpx.HTTPStatusError):
        return None

    retry_after = error.response.headers.get("Retry-After")
    if retry_after is None:
        return None

    try:
        return float(retry_after)
    except ValueError:
        # HTTP-date form; not used by GitHub
        return None


def _log_before_sleep(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        f"Attempt {retry_state.attempt_number} failed: {error}. "
        f"Retrying in {wait:.2f}s..."
    )


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    sleep: Optional[SleepFunc] = None,
) -> T:
    """
    Execute an async function with retry logic.

    Args:
        func: Async function to execute (no arguments)
        config: Retry configuration (defaults if omitted)
        sleep: Awaitable sleep used between attempts (default: asyncio.sleep)

    Returns:
        Result of func() on success

    Raises:
        The last exception if all attempts are exhausted, or the first
        non-retryable one
    """
    config = config or RetryConfig()

    retrying = AsyncRetrying(
        sleep=sleep or asyncio.sleep,
        stop=stop_after_attempt(config.max_attempts),
        wait=config.build_wait(),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=_log_before_sleep,
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await func()
    except Exception as e:
        if is_retryable_error(e):
            logger.error(f"All {config.max_attempts} attempts exhausted. Last error: {e}")
        raise

    # AsyncRetrying either returns from the block above or reraises
    raise RuntimeError("Unexpected state in with_retry")
