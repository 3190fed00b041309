"""
Retry logic with fixed backoff for calls to the metrics provider.

Waits between attempts are interruptible: a set stop event ends the
wait immediately instead of sleeping out the full backoff.
"""

import threading
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from .errors import Cancelled

T = TypeVar("T")


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.__cause__


def retry_call(
    func: Callable[[], T],
    max_attempts: int = 3,
    delay: float = 1.0,
    terminal: Tuple[Type[Exception], ...] = (),
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    cancel: Optional[threading.Event] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    on_success: Optional[Callable[[int], None]] = None,
) -> T:
    """
    Call `func` until it succeeds or attempts run out.

    Args:
        func: Zero-argument callable to attempt
        max_attempts: Total attempts including the first (values < 1 mean 1)
        delay: Fixed wait in seconds between attempts
        terminal: Exceptions re-raised at once, never retried
        exceptions: Exceptions that count as a failed attempt
        cancel: Optional stop event; interrupts the wait between attempts
        on_retry: Optional callback(attempt, exception, delay) before each wait
        on_success: Optional callback(attempt) once `func` succeeds

    Returns:
        The first successful result

    Raises:
        Cancelled: If `cancel` is set before an attempt or during a wait
        RetryError: After the last failed attempt, chained to that failure

    Example:
        stats = retry_call(lambda: client.fetch_once(url), max_attempts=3, delay=2.0,
                           terminal=(TerminalProviderError,))
    """
    max_attempts = max(1, max_attempts)
    last_exception = None

    for attempt in range(1, max_attempts + 1):
        if cancel is not None and cancel.is_set():
            raise Cancelled(f"cancelled before attempt {attempt}")
        try:
            result = func()
        except terminal:
            raise
        except exceptions as e:
            last_exception = e
            if attempt == max_attempts:
                break

            if on_retry:
                on_retry(attempt, e, delay)

            if cancel is not None:
                if cancel.wait(delay):
                    raise Cancelled(f"cancelled while waiting to retry after attempt {attempt}") from e
            else:
                time.sleep(delay)
            continue

        if on_success:
            on_success(attempt)
        return result

    raise RetryError(
        f"Failed after {max_attempts} attempts: {last_exception}", attempts=max_attempts
    ) from last_exception


def should_retry_http_status(status_code: int) -> bool:
    """
    Check if HTTP status code indicates a retryable error.

    Args:
        status_code: HTTP status code

    Returns:
        True unless the status marks a malformed request or a bad credential
    """
    terminal_codes = {
        400,  # Bad Request
        401,  # Unauthorized
        403,  # Forbidden
    }
    return status_code != 200 and status_code not in terminal_codes
