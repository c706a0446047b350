"""
Retry strategies.

Simple fixed-delay retries for local operations and an exponential backoff
retry for network deliveries that must respect a deadline.
"""

import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def compute_backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """
    Delay to wait after the given failed attempt (1-based).

    The delay doubles with every attempt: base, 2*base, 4*base, ... capped at max_delay.
    """
    if attempt < 1:
        return 0.0
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


def retry_with_backoff(
    func: Callable[[], T],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    context: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    deadline: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call func until it succeeds, sleeping with exponential backoff in between.

    Args:
        func: Function to retry
        max_attempts: Maximum number of calls
        base_delay: Delay after the first failure in seconds
        max_delay: Upper bound for any single delay
        context: Context description for log messages
        retry_on: Exception types that trigger another attempt
        deadline: Monotonic time after which no further attempt is started
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock used with deadline

    Returns:
        Result from func if successful

    Raises:
        Exception: The last exception raised by func once attempts are exhausted
            or the deadline does not leave room for another attempt
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    last_exception: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = func()
            if attempt > 1:
                logger.info(f"Operation '{context}' succeeded on attempt {attempt}")
            return result
        except retry_on as e:
            last_exception = e
            if attempt == max_attempts:
                logger.warning(f"All {max_attempts} attempts failed for {context}: {e}")
                break

            delay = compute_backoff_delay(attempt, base_delay, max_delay)
            if deadline is not None and clock() + delay >= deadline:
                logger.warning(
                    f"Deadline reached for {context} after {attempt} attempt(s): {e}"
                )
                break

            logger.debug(f"Attempt {attempt} failed for {context}: {e}; retrying in {delay:.2f}s")
            sleep(delay)

    raise last_exception or RuntimeError(f"All attempts failed for {context}")


def simple_retry(
    func: Callable[[], T],
    max_attempts: int = 3,
    delay: float = 1.0,
    context: str = "operation"
) -> T:
    """
    Fixed-delay retry for local operations such as writing the config file.

    Args:
        func: Function to retry
        max_attempts: Maximum number of attempts
        delay: Delay between attempts in seconds
        context: Context description for error messages

    Returns:
        Result from func if successful
    """
    return retry_with_backoff(
        func,
        max_attempts=max_attempts,
        base_delay=delay,
        max_delay=delay,
        context=context,
    )

