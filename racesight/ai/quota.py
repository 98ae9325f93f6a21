"""Quota limiter for the inference service.

Two limits apply to every call: a sliding per-minute window and a
calendar-day cap. The day cap is terminal until the racing day rolls over;
the per-minute window just makes the caller wait.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable

from racesight.config import racing_today
from racesight.errors import QuotaExceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
WAIT_BUFFER = 0.1  # seconds added so the oldest call has definitely left the window
MAX_WAIT_CYCLES = 5


@dataclass(frozen=True)
class QuotaUsage:
    daily_count: int
    cap: int
    remaining: int
    percent_used: float

    def to_dict(self) -> dict:
        return {
            "daily_count": self.daily_count,
            "cap": self.cap,
            "remaining": self.remaining,
            "percent_used": self.percent_used,
        }


class QuotaLimiter:
    """Process-wide quota state shared by every inference call.

    ``acquire`` checks and records a call as one unit under a lock, so two
    concurrent requests can never both take the last free slot.
    """

    def __init__(
        self,
        per_minute: int = 15,
        per_day: int = 1000,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = racing_today,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if per_minute < 1 or per_day < 1:
            raise ValueError("Quota limits must be positive")
        self.per_minute = per_minute
        self.per_day = per_day
        self._clock = clock
        self._today = today
        self._sleep = sleep
        self._window: deque[float] = deque()
        self._daily_count = 0
        self._day = today()
        self._lock = asyncio.Lock()

    def _rollover(self) -> None:
        today = self._today()
        if today != self._day:
            logger.info(f"New racing day {today}: resetting daily quota ({self._daily_count} used on {self._day})")
            self._day = today
            self._daily_count = 0

    def _prune(self, now: float) -> None:
        while self._window and now - self._window[0] >= WINDOW_SECONDS:
            self._window.popleft()

    def seconds_until_slot(self, now: float) -> float:
        """Time until the sliding window admits another call (0 if it already does)."""
        if len(self._window) < self.per_minute:
            return 0.0
        return max(0.0, WINDOW_SECONDS - (now - self._window[0])) + WAIT_BUFFER

    async def acquire(self) -> None:
        """Wait for a free slot and record the call.

        Raises:
            QuotaExceeded: the daily cap is already used up
        """
        async with self._lock:
            for _ in range(MAX_WAIT_CYCLES):
                self._rollover()
                if self._daily_count >= self.per_day:
                    raise QuotaExceeded(
                        f"Daily API limit reached ({self.per_day} requests). Resets at midnight."
                    )
                now = self._clock()
                self._prune(now)
                wait = self.seconds_until_slot(now)
                if wait <= 0:
                    self._window.append(now)
                    self._daily_count += 1
                    logger.info(
                        f"API call {self._daily_count}/{self.per_day} today, "
                        f"{len(self._window)} in last minute"
                    )
                    return
                logger.warning(f"Rate limit reached. Waiting {wait:.1f}s...")
                await self._sleep(wait)
            raise RuntimeError(f"Quota window did not drain after {MAX_WAIT_CYCLES} waits")

    def usage(self) -> QuotaUsage:
        """Current daily usage. Reads state only; a pending day rollover reports zero."""
        count = self._daily_count if self._today() == self._day else 0
        return QuotaUsage(
            daily_count=count,
            cap=self.per_day,
            remaining=max(0, self.per_day - count),
            percent_used=round(count / self.per_day * 100, 1),
        )

    @property
    def calls_in_window(self) -> int:
        return len(self._window)
