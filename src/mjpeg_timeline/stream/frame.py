"""
Frame Data Model
=================

Internal frame representation for the capture pipeline.

This module defines the immutable Frame and the RenderHandle that the
FrameStore hands out to display code.

Design Rules:
    - Frame.payload is exactly one JPEG image (SOI ... EOI)
    - A RenderHandle has a single owner: the FrameStore entry holding it
    - A released handle never yields image data again
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Optional

import numpy as np

from mjpeg_timeline.stream.image_decoder import decode_jpeg_bgr


logger = logging.getLogger(__name__)


class HandleReleasedError(Exception):
    """Raised when a released RenderHandle is used."""
    pass


class RenderHandle:
    """
    Opaque, ownership-tracked reference to one frame's image data.

    The handle is valid from creation until release(). Decoded pixels are
    cached on first use and dropped on release.

    Attributes:
        handle_id: Opaque identifier, unique per handle
        valid: Whether the handle may still be used
        release_count: Number of effective releases (0 or 1)
    """

    __slots__ = ("handle_id", "_payload", "_image", "_released", "_lock")

    def __init__(self, payload: bytes) -> None:
        self.handle_id: str = f"frame-{uuid.uuid4().hex}"
        self._payload: Optional[bytes] = payload
        self._image: Optional[np.ndarray] = None
        self._released: bool = False
        self._lock = threading.Lock()

    @property
    def valid(self) -> bool:
        return not self._released

    @property
    def decoded(self) -> bool:
        """Whether decoded pixels are cached on this handle."""
        return self._image is not None

    @property
    def release_count(self) -> int:
        return 1 if self._released else 0

    def jpeg(self) -> bytes:
        """
        Get the JPEG bytes behind this handle.

        Raises:
            HandleReleasedError: If the handle was released
        """
        with self._lock:
            if self._released or self._payload is None:
                raise HandleReleasedError(f"{self.handle_id} has been released")
            return self._payload

    def image(self) -> np.ndarray:
        """
        Get the decoded BGR image, decoding on first access.

        Raises:
            HandleReleasedError: If the handle was released
            ImageDecodeError: If the payload is not a decodable JPEG
        """
        with self._lock:
            if self._released or self._payload is None:
                raise HandleReleasedError(f"{self.handle_id} has been released")
            if self._image is None:
                self._image = decode_jpeg_bgr(self._payload)
            return self._image

    def release(self) -> bool:
        """
        Invalidate the handle and drop cached image data.

        Returns:
            True if this call released the handle,
            False if it was already released.
        """
        with self._lock:
            if self._released:
                return False
            self._released = True
            self._payload = None
            self._image = None
        logger.debug(f"Released {self.handle_id}")
        return True

    def __repr__(self) -> str:
        state = "valid" if self.valid else "released"
        return f"RenderHandle({self.handle_id}, {state})"


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One captured JPEG frame.

    Attributes:
        timestamp: Logical capture time in seconds (from the time source)
        payload: Complete JPEG bytes, starting FF D8 and ending FF D9
        handle: Render handle derived from payload
    """

    timestamp: float
    payload: bytes
    handle: RenderHandle

    @classmethod
    def from_payload(cls, payload: bytes, timestamp: float) -> "Frame":
        """Build a frame and its render handle from raw JPEG bytes."""
        return cls(
            timestamp=timestamp,
            payload=payload,
            handle=RenderHandle(payload),
        )

    @property
    def size(self) -> int:
        return len(self.payload)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(timestamp={self.timestamp:.3f}, "
            f"size={len(self.payload)}, "
            f"handle={self.handle.handle_id})"
        )
