"""
Frame Store
============

Bounded, time-ordered history of captured frames.

This module provides the FrameStore class, which sits between the capture
session (single producer) and playback (lookups from UI ticks or HTTP
handlers).

Design Rules:
    - Fixed maximum size (evicts oldest on overflow)
    - Every removal path releases the frame's render handle exactly once
    - One lock serializes inserts, lookups and clears
    - Lookup by time is a binary search, never a scan
"""

import bisect
import logging
import threading
from typing import Iterable, List, Optional, Tuple

from mjpeg_timeline.stream.frame import Frame


logger = logging.getLogger(__name__)


DEFAULT_MAX_FRAMES = 1000


class FrameStore:
    """
    Thread-safe, arrival-ordered frame history with FIFO eviction.

    Attributes:
        max_frames: Maximum frames to retain
        count: Current number of frames
        evicted_count: Frames evicted due to overflow
        disposed: Whether the store rejects further inserts

    Example:
        store = FrameStore(max_frames=1000)

        # Producer
        store.insert(Frame.from_payload(jpeg, timestamp=now()))

        # Consumer
        frame = store.frame_at_time(render_time)
    """

    def __init__(self, max_frames: int = DEFAULT_MAX_FRAMES) -> None:
        """
        Initialize frame store.

        Args:
            max_frames: Maximum frames to retain. Must be >= 1.
        """
        if max_frames < 1:
            raise ValueError("max_frames must be >= 1")

        self._max_frames = max_frames
        self._frames: List[Frame] = []
        self._timestamps: List[float] = []
        self._lock = threading.RLock()
        self._disposed: bool = False

        self._evicted_count: int = 0
        self._total_inserted: int = 0
        self._out_of_order_count: int = 0

    @property
    def max_frames(self) -> int:
        """Maximum store size."""
        return self._max_frames

    @property
    def count(self) -> int:
        """Current number of frames in store."""
        with self._lock:
            return len(self._frames)

    def __len__(self) -> int:
        return self.count

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def evicted_count(self) -> int:
        """Number of frames evicted due to overflow."""
        return self._evicted_count

    @property
    def total_inserted(self) -> int:
        """Total frames ever inserted."""
        return self._total_inserted

    @property
    def out_of_order_count(self) -> int:
        """Inserts whose timestamp was earlier than the newest frame."""
        return self._out_of_order_count

    @property
    def first_timestamp(self) -> Optional[float]:
        with self._lock:
            return self._timestamps[0] if self._timestamps else None

    @property
    def last_timestamp(self) -> Optional[float]:
        with self._lock:
            return self._timestamps[-1] if self._timestamps else None

    def insert(self, frame: Frame) -> bool:
        """
        Append a frame, evicting the oldest frames beyond capacity.

        Args:
            frame: Frame to add. Arrival order is authoritative.

        Returns:
            True if the frame was stored,
            False if the store has been disposed.
        """
        with self._lock:
            if self._disposed:
                logger.debug("Insert rejected, frame store is disposed")
                frame.handle.release()
                return False

            if self._timestamps and frame.timestamp < self._timestamps[-1]:
                self._out_of_order_count += 1
                logger.warning(
                    f"Frame timestamp went backwards: got {frame.timestamp:.3f}, "
                    f"previous was {self._timestamps[-1]:.3f}"
                )

            self._frames.append(frame)
            self._timestamps.append(frame.timestamp)
            self._total_inserted += 1

            excess = len(self._frames) - self._max_frames
            if excess > 0:
                evicted = self._frames[:excess]
                self._release(evicted)
                del self._frames[:excess]
                del self._timestamps[:excess]
                self._evicted_count += excess

            return True

    def frame_at_time(self, timestamp: float) -> Optional[Frame]:
        """
        Get the frame showing at a playback time.

        Returns the frame with the greatest timestamp <= timestamp; among
        equal timestamps, the most recently inserted one.

        Args:
            timestamp: Playback time in the session's time domain

        Returns:
            Matching frame, or None if the store is empty or every
            frame is later than timestamp.
        """
        located = self.locate(timestamp)
        return located[1] if located is not None else None

    def locate(self, timestamp: float) -> Optional[Tuple[int, Frame]]:
        """
        Like frame_at_time(), but also return the frame's index.

        Returns:
            (index, frame), or None if no frame is at or before timestamp.
        """
        with self._lock:
            index = bisect.bisect_right(self._timestamps, timestamp) - 1
            if index < 0:
                return None
            return index, self._frames[index]

    def frame_at_index(self, index: int) -> Optional[Frame]:
        """
        Get a frame by position (0 = oldest retained).

        Returns:
            Frame at index, or None if out of range.
        """
        with self._lock:
            if index < 0 or index >= len(self._frames):
                return None
            return self._frames[index]

    def snapshot(self) -> List[Frame]:
        """Get a copy of the retained frames, oldest first."""
        with self._lock:
            return list(self._frames)

    def clear(self) -> int:
        """
        Release every frame and empty the store.

        Returns:
            Number of frames cleared.
        """
        with self._lock:
            cleared = len(self._frames)
            self._release(self._frames)
            self._frames = []
            self._timestamps = []
        if cleared:
            logger.info(f"Cleared {cleared} frames")
        return cleared

    def dispose(self) -> None:
        """Clear the store and reject all further inserts."""
        with self._lock:
            if self._disposed:
                return
            self.clear()
            self._disposed = True
        logger.debug("Frame store disposed")

    def _release(self, frames: Iterable[Frame]) -> None:
        for frame in frames:
            frame.handle.release()

    def metrics(self) -> dict:
        """
        Get store metrics for observability.

        Returns:
            Dict with size, max_frames, evicted_count, total_inserted,
            out_of_order_count, first_timestamp, last_timestamp
        """
        with self._lock:
            return {
                "size": len(self._frames),
                "max_frames": self._max_frames,
                "evicted_count": self._evicted_count,
                "total_inserted": self._total_inserted,
                "out_of_order_count": self._out_of_order_count,
                "first_timestamp": self._timestamps[0] if self._timestamps else None,
                "last_timestamp": self._timestamps[-1] if self._timestamps else None,
            }
