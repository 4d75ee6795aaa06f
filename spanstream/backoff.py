"""
Reconnection backoff: the retry schedule and a retry combinator that keeps it separate from
transport code.
"""

import logging
import time
from typing import Callable, Sequence, TypeVar

from .constants import LOG_TAG, CONNECT_RETRY_PERIODS

logger = logging.getLogger(LOG_TAG)

T = TypeVar("T")


class ReconnectionBackoff:
    """
    Counts consecutive connect failures and maps the count to a wait period.
    With the default periods the waits are 15, 15, 30, 60, 120, then 300 seconds from then on.
    """

    def __init__(self, periods: Sequence[float] = CONNECT_RETRY_PERIODS):
        if not periods:
            raise ValueError("periods must not be empty")
        self._periods = tuple(periods)
        self.attempts = 0

    def period(self, exponential_backoff: bool = True) -> float:
        """Seconds to wait before the next attempt. Without exponential backoff, always the base period."""
        if not exponential_backoff:
            return self._periods[0]
        return self._periods[min(self.attempts, len(self._periods) - 1)]

    def note_failure(self) -> None:
        self.attempts += 1

    def reset(self) -> None:
        self.attempts = 0

    def __repr__(self) -> str:
        return f"ReconnectionBackoff(attempts={self.attempts}, periods={self._periods})"


def retry_with_backoff(
    action: Callable[[], T],
    is_retryable: Callable[[BaseException], bool],
    next_period: Callable[[], float],
    note_failure: Callable[[], None],
    sleep: Callable[[float], None] = time.sleep,
    on_success: Callable[[], None] = lambda: None,
) -> T:
    """
    Run action until it succeeds. Retryable failures are logged, then the caller sleeps for
    next_period() and note_failure() is called before the next try. Any other exception
    propagates unchanged.
    """
    while True:
        try:
            result = action()
        except Exception as error:
            if not is_retryable(error):
                raise
            period = next_period()
            logger.error(f"Error establishing connection with the trace observer: {error}", exc_info=True)
            logger.info(f"Will re-attempt the trace observer connection in {period} seconds")
            sleep(period)
            note_failure()
            continue
        on_success()
        return result
