"""Retry a fallible call with exponential backoff and jitter."""
import functools
import logging
import random
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 0.1
DEFAULT_MAX_DELAY = 5.0
DEFAULT_BACKOFF_FACTOR = 2.0


def always_retry(error: Exception) -> bool:
    return True


def compute_delay(attempt: int, initial_delay: float, max_delay: float, backoff_factor: float,
                  rand: Callable[[], float] = random.random) -> float:
    """Delay in seconds before retry number ``attempt`` (0-based), with +/-20% jitter."""
    capped = min(initial_delay * (backoff_factor ** attempt), max_delay)
    return capped * (0.8 + rand() * 0.4)


def retry(
    operation: Callable[[], T],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    should_retry: Callable[[Exception], bool] = always_retry,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``operation`` until it succeeds or attempts run out.

    The last error is re-raised when ``max_attempts`` is reached or
    ``should_retry`` rejects it. ``on_retry(error, attempt)`` runs before each
    wait, with ``attempt`` counting from 1.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return operation()
        except Exception as error:
            if attempt >= max_attempts - 1 or not should_retry(error):
                raise
            if on_retry is not None:
                on_retry(error, attempt + 1)
            delay = compute_delay(attempt, initial_delay, max_delay, backoff_factor)
            logger.debug("attempt %d/%d failed (%s), retrying in %.3fs",
                         attempt + 1, max_attempts, error, delay)
            sleep(delay)
    raise RuntimeError("unreachable")


def retrying(**options):
    """Decorator form of :func:`retry`."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return retry(lambda: func(*args, **kwargs), **options)
        return wrapper
    return decorator
