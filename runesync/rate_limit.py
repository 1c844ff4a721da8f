"""
RuneSync - Rate Limiter

Decides whether a sync may start, based only on when the last attempt
finished. Ambient triggers wait for the configured interval; manual triggers
only need to respect a fixed short spacing so button mashing cannot spam the
service or the chat box.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from runesync.config import MANUAL_SYNC_SPACING_SECONDS

logger = logging.getLogger(__name__)


class RateLimiter:
    """Last-sync timestamp with an ambient and a manual policy."""

    def __init__(
        self,
        ambient_interval: Callable[[], float] | float = 300.0,
        manual_spacing: float = MANUAL_SYNC_SPACING_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        # A callable interval is re-read on every check so settings changes apply.
        if callable(ambient_interval):
            self._ambient_interval = ambient_interval
        else:
            fixed = float(ambient_interval)
            self._ambient_interval = lambda: fixed
        self.manual_spacing = manual_spacing
        self._clock = clock
        self.last_sync_at = 0.0

    @property
    def ambient_interval(self) -> float:
        return self._ambient_interval()

    def now(self) -> float:
        return self._clock()

    def can_ambient_sync(self, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        return now - self.last_sync_at > self.ambient_interval

    def can_manual_sync(self, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        return now - self.last_sync_at > self.manual_spacing

    def record_sync(self, now: Optional[float] = None) -> None:
        """Mark a completed attempt (successful or not)."""
        self.last_sync_at = self._clock() if now is None else now
        logger.debug(f"Recorded sync at {self.last_sync_at:.3f}")

    def seconds_until_ambient(self, now: Optional[float] = None) -> float:
        now = self._clock() if now is None else now
        return max(0.0, self.last_sync_at + self.ambient_interval - now)
