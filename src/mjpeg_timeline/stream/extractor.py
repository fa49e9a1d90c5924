"""
Boundary Frame Extractor
=========================

Splits an MJPEG multipart byte stream into complete JPEG payloads.

The multipart boundary token is read once from the Content-Type header and
confirms that the response really is a multipart stream. Frames themselves
are located by the JPEG SOI/EOI markers, which copes with the many boundary
spellings cameras send (--boundary, --myboundary, with or without CRLF).

Example:
    boundary = require_boundary(response.headers["content-type"])
    extractor = BoundaryFrameExtractor(boundary)

    async for chunk in response.aiter_bytes():
        for payload in extractor.feed(chunk):
            handle(payload)

Design Rules:
    - extract_next() never mutates its input
    - feed() drains every complete frame before returning
    - Unconsumed data is capped; an over-grown buffer is trimmed to its tail
"""

import logging
import re
from typing import List, NamedTuple, Optional, Tuple, Union


logger = logging.getLogger(__name__)


JPEG_SOI = b"\xff\xd8"
JPEG_EOI = b"\xff\xd9"

MAX_BUFFER_BYTES = 1024 * 1024
TRIM_TO_BYTES = 512 * 1024

_BOUNDARY_RE = re.compile(r'boundary=(?:"([^"]+)"|([^\s;]+))', re.IGNORECASE)


class BoundaryParseError(Exception):
    """Raised when a Content-Type header carries no multipart boundary."""
    pass


class ExtractResult(NamedTuple):
    """One complete JPEG payload and the bytes that follow it."""

    payload: bytes
    remainder: bytes


def parse_boundary(content_type: Optional[str]) -> Optional[str]:
    """
    Extract the multipart boundary token from a Content-Type value.

    Handles the common camera variants:
        multipart/x-mixed-replace; boundary=--myboundary
        multipart/x-mixed-replace;boundary=myboundary
        multipart/x-mixed-replace; boundary="myboundary"

    Args:
        content_type: Raw Content-Type header value

    Returns:
        Boundary token, or None if the header has none
    """
    if not content_type:
        return None
    match = _BOUNDARY_RE.search(content_type)
    if match is None:
        return None
    return match.group(1) or match.group(2)


def require_boundary(content_type: Optional[str]) -> str:
    """
    Like parse_boundary(), but a missing token is a protocol error.

    Raises:
        BoundaryParseError: If no boundary token can be parsed
    """
    boundary = parse_boundary(content_type)
    if boundary is None:
        raise BoundaryParseError(
            "Could not find MJPEG boundary in Content-Type header"
        )
    return boundary


def _find_frame(buffer: Union[bytes, bytearray]) -> Optional[Tuple[int, int]]:
    """(start, stop) slice bounds of the first complete JPEG, or None."""
    start = buffer.find(JPEG_SOI)
    if start == -1:
        return None

    end = buffer.find(JPEG_EOI, start + len(JPEG_SOI))
    if end == -1:
        return None

    return start, end + len(JPEG_EOI)


def extract_next(buffer: bytes) -> Optional[ExtractResult]:
    """
    Find the first complete JPEG image in buffer.

    Args:
        buffer: Accumulated stream bytes

    Returns:
        ExtractResult(payload, remainder), or None if SOI or a following
        EOI is missing (more bytes needed).
    """
    bounds = _find_frame(buffer)
    if bounds is None:
        return None

    start, stop = bounds
    return ExtractResult(
        payload=bytes(buffer[start:stop]),
        remainder=bytes(buffer[stop:]),
    )


class BoundaryFrameExtractor:
    """
    Stateful accumulator that turns network chunks into JPEG payloads.

    Attributes:
        boundary: Multipart boundary token from the response headers
        max_buffer_bytes: Ceiling for unconsumed bytes before trimming
        trim_to_bytes: Bytes kept (from the tail) when trimming

    Example:
        extractor = BoundaryFrameExtractor("myboundary")
        payloads = extractor.feed(chunk)
    """

    def __init__(
        self,
        boundary: str,
        max_buffer_bytes: int = MAX_BUFFER_BYTES,
        trim_to_bytes: int = TRIM_TO_BYTES,
    ) -> None:
        if trim_to_bytes < 1 or trim_to_bytes > max_buffer_bytes:
            raise ValueError("trim_to_bytes must be in [1, max_buffer_bytes]")

        self.boundary = boundary
        self.max_buffer_bytes = max_buffer_bytes
        self.trim_to_bytes = trim_to_bytes

        self._buffer = bytearray()
        self._frames_extracted: int = 0
        self._bytes_received: int = 0
        self._trim_count: int = 0

    @property
    def pending(self) -> int:
        """Number of unconsumed bytes held."""
        return len(self._buffer)

    @property
    def frames_extracted(self) -> int:
        return self._frames_extracted

    @property
    def bytes_received(self) -> int:
        return self._bytes_received

    @property
    def trim_count(self) -> int:
        """Number of times the buffer was trimmed to bound memory."""
        return self._trim_count

    def feed(self, chunk: bytes) -> List[bytes]:
        """
        Append a chunk and drain every complete frame.

        Args:
            chunk: Bytes just read from the network

        Returns:
            Complete JPEG payloads, in stream order (possibly empty)
        """
        if chunk:
            self._buffer.extend(chunk)
            self._bytes_received += len(chunk)

        payloads: List[bytes] = []
        while True:
            bounds = _find_frame(self._buffer)
            if bounds is None:
                break
            start, stop = bounds
            payloads.append(bytes(self._buffer[start:stop]))
            del self._buffer[:stop]

        self._frames_extracted += len(payloads)

        if len(self._buffer) > self.max_buffer_bytes:
            dropped = len(self._buffer) - self.trim_to_bytes
            del self._buffer[:dropped]
            self._trim_count += 1
            logger.warning(
                f"Stream buffer exceeded {self.max_buffer_bytes} bytes without "
                f"a complete frame, dropped {dropped} bytes "
                f"(trim #{self._trim_count})"
            )

        return payloads

    def reset(self) -> None:
        """Discard unconsumed bytes."""
        self._buffer.clear()

    def metrics(self) -> dict:
        """
        Get extractor metrics for observability.

        Returns:
            Dict with pending_bytes, bytes_received, frames_extracted, trim_count
        """
        return {
            "pending_bytes": self.pending,
            "bytes_received": self._bytes_received,
            "frames_extracted": self._frames_extracted,
            "trim_count": self._trim_count,
        }
