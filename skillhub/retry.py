"""
Backoff for blob storage reads.

A README fetch can hit a timeout, a dropped connection, rate limiting or a
5xx from the blob host. Those are retried with doubling delays; anything
else propagates on the first attempt. Store pagination is never retried
here, the cursor is the resumption token for a failed scan.
"""

import functools
import time
from typing import Callable, Optional, Tuple, Type

# 408 request timeout, 429 rate limited, 5xx gateway/server trouble
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class RetryError(Exception):
    """Raised when a blob read still fails after its last attempt."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
):
    """
    Retry the wrapped call, sleeping ``base_delay * 2**n`` before retry n+1.

    Args:
        max_retries: Retries after the first attempt (0 = try once)
        base_delay: Sleep before the first retry, in seconds
        exceptions: Failures worth retrying
        on_retry: Called as ``on_retry(attempt, error, delay)`` before each sleep

    Example:
        @exponential_backoff(max_retries=3, exceptions=(TransientBlobError,))
        def fetch(url):
            return requests.get(url, timeout=15)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        raise RetryError(
                            f"Gave up after {attempt + 1} attempts: {e}", attempts=attempt + 1
                        ) from e
                    delay = base_delay * (2 ** attempt)
                    attempt += 1
                    if on_retry is not None:
                        on_retry(attempt, e, delay)
                    time.sleep(delay)

        return wrapper
    return decorator
