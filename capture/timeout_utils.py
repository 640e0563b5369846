"""Bounded-wait and retry helpers for opening and releasing capture channels."""

from __future__ import annotations

import functools
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from exceptions import CameraConnectionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_with_timeout(
    func: Callable[..., T],
    timeout_seconds: float,
    error_message: str = "Operation timed out",
    *args: Any,
    on_late_result: Optional[Callable[[T], None]] = None,
    **kwargs: Any,
) -> T:
    """Run func in a worker thread and wait at most timeout_seconds.

    Driver calls such as VideoCapture.open on a GStreamer pipeline can hang
    when the sensor is busy.

    Args:
        on_late_result: Called with the result if func completes after the
            timeout, so resources it created can still be released

    Raises:
        CameraConnectionError: If the call does not finish in time
        Exception: Anything raised by func
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeoutError:
        logger.error(f"{error_message} after {timeout_seconds}s")
        if on_late_result is not None:
            future.add_done_callback(_late_result_handler(on_late_result))
        raise CameraConnectionError(f"{error_message} after {timeout_seconds}s")
    finally:
        # Do not wait on a hung driver call
        executor.shutdown(wait=False)


def _late_result_handler(on_late_result: Callable[[T], None]) -> Callable[[Future], None]:
    def _handle(future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        try:
            on_late_result(future.result())
        except Exception as e:
            logger.error(f"Cleanup of late result failed: {e}")

    return _handle


def exponential_backoff(attempt: int, base_delay: float = 0.5, max_delay: float = 5.0) -> float:
    """Delay in seconds before retry number attempt (0-indexed)."""
    return min(base_delay * (2**attempt), max_delay)


class RetryPolicy:
    """How many times to retry an operation, and on which exceptions."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 5.0,
        retry_on: Tuple[Type[Exception], ...] = (CameraConnectionError,),
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retry_on = retry_on

    def should_retry(self, attempt: int, exception: Exception) -> bool:
        if attempt + 1 >= self.max_attempts:
            return False
        return isinstance(exception, self.retry_on)

    def get_delay(self, attempt: int) -> float:
        return exponential_backoff(attempt, self.base_delay, self.max_delay)


def retry_on_failure(
    policy: Optional[RetryPolicy] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator retrying the wrapped call with exponential backoff.

    Example:
        @retry_on_failure(RetryPolicy(max_attempts=2))
        def open(self, serial: str) -> None:
            ...
    """
    if policy is None:
        policy = RetryPolicy()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}/{policy.max_attempts}: {e}"
                    )
                    if not policy.should_retry(attempt, e):
                        raise
                    delay = policy.get_delay(attempt)
                    logger.debug(f"Waiting {delay:.2f}s before retry")
                    time.sleep(delay)
                    attempt += 1
                    logger.info(f"Retrying {func.__name__} (attempt {attempt + 1}/{policy.max_attempts})")

        return wrapper

    return decorator


__all__ = [
    "run_with_timeout",
    "exponential_backoff",
    "RetryPolicy",
    "retry_on_failure",
]
