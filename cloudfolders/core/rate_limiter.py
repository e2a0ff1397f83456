"""Fixed-window request counter owned by a single provider instance."""

import logging
import time
from typing import Callable

from cloudfolders.errors import RateLimitExceededError

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class RateLimiter:
    """
    Allow at most ``requests_per_minute`` calls per 60 second window.

    Windows are fixed, not sliding: a burst straddling a window boundary can
    see up to twice the limit.
    """

    def __init__(
        self,
        requests_per_minute: int,
        name: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        self.requests_per_minute = requests_per_minute
        self.name = name
        self._clock = clock
        self._request_count = 0
        self._window_start = clock()

    @property
    def remaining(self) -> int:
        """Calls left in the current window (without resetting it)."""
        if self._clock() - self._window_start >= WINDOW_SECONDS:
            return self.requests_per_minute
        return max(0, self.requests_per_minute - self._request_count)

    def check_limit(self) -> None:
        """
        Consume one call from the budget.

        Raises:
            RateLimitExceededError: If the window's budget is spent
        """
        now = self._clock()
        if now - self._window_start >= WINDOW_SECONDS:
            self._request_count = 0
            self._window_start = now

        if self._request_count >= self.requests_per_minute:
            retry_after = max(0.0, WINDOW_SECONDS - (now - self._window_start))
            logger.warning(
                f"Rate limit exceeded for {self.name}: "
                f"{self._request_count}/{self.requests_per_minute} per minute"
            )
            raise RateLimitExceededError(
                self.name,
                limit=self.requests_per_minute,
                retry_after=retry_after,
            )

        self._request_count += 1
