"""
Timeline Clock
==============

Time sources for stamping captured frames.

A StreamSession never reads a clock itself; the application hands it
TimelineClock.now. Two modes are supported:

    live: seconds elapsed since the clock was created (or reset)
    log:  synchronized log time; after sync(t), now() returns t plus the
          time elapsed since the sync, or t itself while paused

Example:
    clock = TimelineClock()
    session = StreamSession(time_source=clock.now)

    # Playback of a log is at t=12.5 and running
    clock.sync(12.5)
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class TimelineMode(str, Enum):
    """Which time domain frames are stamped in."""

    LIVE = "live"
    LOG = "log"


class TimelineClock:
    """
    Monotonic logical clock with optional log-time synchronization.

    Attributes:
        mode: Current time domain
        running: Whether log time advances (always True in live mode)
    """

    def __init__(
        self,
        mode: TimelineMode = TimelineMode.LIVE,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._monotonic = monotonic
        self._origin: float = monotonic()
        self._mode = TimelineMode(mode)
        self._log_anchor: Optional[float] = None
        self._sync_origin: float = self._origin
        self._running: bool = True

    @property
    def mode(self) -> TimelineMode:
        return self._mode

    @property
    def running(self) -> bool:
        return self._running

    def now(self) -> float:
        """Current logical timestamp in seconds."""
        if self._mode == TimelineMode.LOG and self._log_anchor is not None:
            if not self._running:
                return self._log_anchor
            return self._log_anchor + (self._monotonic() - self._sync_origin)
        return self._monotonic() - self._origin

    def sync(self, log_time: float, running: bool = True) -> None:
        """
        Align the clock with a log timestamp and switch to log mode.

        Args:
            log_time: Log time corresponding to this instant
            running: False to hold time at log_time (paused playback)
        """
        self._mode = TimelineMode.LOG
        self._log_anchor = float(log_time)
        self._sync_origin = self._monotonic()
        self._running = running
        logger.info(
            f"Timeline synced to log time {log_time:.3f} "
            f"({'running' if running else 'paused'})"
        )

    def reset(self) -> None:
        """Return to live mode, counting from zero again."""
        self._mode = TimelineMode.LIVE
        self._origin = self._monotonic()
        self._log_anchor = None
        self._running = True
        logger.info("Timeline reset to live mode")

    def to_dict(self) -> dict:
        """Export clock state as dict."""
        return {
            "mode": self._mode.value,
            "running": self._running,
            "now": self.now(),
        }
