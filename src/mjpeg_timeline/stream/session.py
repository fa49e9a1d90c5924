"""
Stream Session
===============

HTTP client that captures an MJPEG stream into a FrameStore.

This module provides the StreamSession class which:
    - Opens a cancellable streaming GET against the camera URL
    - Parses the multipart boundary from the Content-Type header
    - Feeds body chunks through a BoundaryFrameExtractor
    - Stamps each frame with the injected time source
    - Pushes frames into its FrameStore and notifies observers

Example:
    session = StreamSession(time_source=clock.now, max_frames=1000)
    session.add_observer(lambda state: print(state.frame_count))

    task = await session.start_capture("http://camera.local/stream.mjpg")

    # Playback side, at any time
    frame = session.frame_at_time(render_time)

    await session.dispose()

Design Rules:
    - Never reads a wall clock; timestamps come from time_source
    - Cancellation is silent; every other failure becomes ERROR state
    - No read timeout and no automatic retry
    - Frames survive errors and stops; only clear/dispose release them
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

import httpx

from mjpeg_timeline.models.state import CaptureState, CaptureStatus
from mjpeg_timeline.stream.extractor import (
    MAX_BUFFER_BYTES,
    TRIM_TO_BYTES,
    BoundaryFrameExtractor,
    require_boundary,
)
from mjpeg_timeline.stream.frame import Frame
from mjpeg_timeline.stream.store import DEFAULT_MAX_FRAMES, FrameStore


logger = logging.getLogger(__name__)


TimeSource = Callable[[], float]
StateObserver = Callable[[CaptureState], None]


class CaptureError(Exception):
    """Raised inside the read loop for fatal, non-transport failures."""
    pass


class SessionDisposedError(Exception):
    """Raised when a disposed session is asked to capture again."""
    pass


class StreamSessionMetrics:
    """Metrics for StreamSession observability."""

    __slots__ = (
        "captures_started",
        "frames_received",
        "bytes_received",
        "errors",
        "last_timestamp",
    )

    def __init__(self) -> None:
        self.captures_started: int = 0
        self.frames_received: int = 0
        self.bytes_received: int = 0
        self.errors: int = 0
        self.last_timestamp: Optional[float] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "captures_started": self.captures_started,
            "frames_received": self.frames_received,
            "bytes_received": self.bytes_received,
            "errors": self.errors,
            "last_timestamp": self.last_timestamp,
        }


class StreamSession:
    """
    Capture lifecycle for one MJPEG stream and its frame history.

    Attributes:
        store: FrameStore owned exclusively by this session
        url: URL of the current or last capture
        status: Lifecycle state
        error: Failure message while in ERROR state
        metrics: Operational metrics
    """

    def __init__(
        self,
        time_source: TimeSource,
        max_frames: int = DEFAULT_MAX_FRAMES,
        *,
        connect_timeout: float = 10.0,
        max_buffer_bytes: int = MAX_BUFFER_BYTES,
        trim_to_bytes: int = TRIM_TO_BYTES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize stream session.

        Args:
            time_source: No-argument callable returning the logical time
            max_frames: Frame history capacity
            connect_timeout: Seconds allowed to establish the connection
            max_buffer_bytes: Extractor ceiling before trimming
            trim_to_bytes: Bytes the extractor keeps when trimming
            transport: Optional httpx transport (tests inject a mock)
            headers: Extra request headers (e.g. auth)
        """
        self.store = FrameStore(max_frames=max_frames)
        self.connect_timeout = connect_timeout
        self.max_buffer_bytes = max_buffer_bytes
        self.trim_to_bytes = trim_to_bytes

        self._time_source: Optional[TimeSource] = time_source
        self._transport = transport
        self._headers = headers or {}

        # State
        self._url: str = ""
        self._status: CaptureStatus = CaptureStatus.IDLE
        self._error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._lifecycle_lock = asyncio.Lock()
        self._extractor: Optional[BoundaryFrameExtractor] = None
        self._observers: List[StateObserver] = []
        self._disposed: bool = False

        # Metrics
        self.metrics = StreamSessionMetrics()

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def status(self) -> CaptureStatus:
        return self._status

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_capturing(self) -> bool:
        """Whether a capture is connecting or running."""
        return self._status in (CaptureStatus.CONNECTING, CaptureStatus.CAPTURING)

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def frame_count(self) -> int:
        return self.store.count

    def frame_at_time(self, timestamp: float) -> Optional[Frame]:
        """Frame with the greatest timestamp <= timestamp, or None."""
        return self.store.frame_at_time(timestamp)

    def frame_at_index(self, index: int) -> Optional[Frame]:
        """Frame at a store position, or None if out of range."""
        return self.store.frame_at_index(index)

    def get_state(self) -> CaptureState:
        """Snapshot of the current capture state."""
        return CaptureState(
            url=self._url,
            status=self._status,
            is_capturing=self.is_capturing,
            frame_count=self.store.count,
            error=self._error,
        )

    def extractor_metrics(self) -> dict:
        """Metrics of the active (or last) extractor."""
        if self._extractor is None:
            return {}
        return self._extractor.metrics()

    # -------------------------------------------------------------------------
    # Collaborators
    # -------------------------------------------------------------------------

    def add_observer(self, observer: StateObserver) -> None:
        """Register a callback invoked with every CaptureState change."""
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: StateObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def set_time_source(self, time_source: TimeSource) -> None:
        """Replace the time source used to stamp new frames."""
        self._time_source = time_source

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start_capture(self, url: str) -> asyncio.Task:
        """
        Start capturing from url, replacing any running capture.

        Args:
            url: http(s) MJPEG endpoint (validated upstream)

        Returns:
            The background task running the read loop.

        Raises:
            SessionDisposedError: If the session has been disposed
        """
        async with self._lifecycle_lock:
            if self._disposed:
                raise SessionDisposedError("Cannot start capture on a disposed session")

            await self._stop_locked()

            self._url = url
            self._error = None
            self._extractor = None
            self.metrics.captures_started += 1
            logger.info(f"Starting capture from {url}")
            self._set_status(CaptureStatus.CONNECTING)

            self._task = asyncio.create_task(
                self._capture(url),
                name="mjpeg_capture",
            )
            return self._task

    async def stop_capture(self) -> None:
        """
        Stop the current capture.

        Cancels the read loop and waits for it to release the connection.
        Retained frames are kept.
        """
        async with self._lifecycle_lock:
            await self._stop_locked()

    async def _stop_locked(self) -> None:
        task = self._task
        self._task = None

        if task is not None and not task.done():
            logger.info("Stopping capture...")
            task.cancel()
            # a CancelledError raised by this wait is the caller's own
            await asyncio.wait({task})

        if self.is_capturing:
            self._set_status(CaptureStatus.IDLE)

    def clear_frames(self) -> int:
        """
        Release all retained frames. Capture keeps running.

        Returns:
            Number of frames cleared.
        """
        cleared = self.store.clear()
        self._notify()
        return cleared

    async def dispose(self) -> None:
        """Stop capturing, release every frame and detach collaborators."""
        async with self._lifecycle_lock:
            if self._disposed:
                return

            await self._stop_locked()
            self.store.dispose()
            self._disposed = True
            self._notify()

        self._observers.clear()
        self._time_source = None
        logger.info("Stream session disposed")

    async def __aenter__(self) -> "StreamSession":
        return self

    async def __aexit__(self, *args) -> None:
        await self.dispose()

    # -------------------------------------------------------------------------
    # Read loop
    # -------------------------------------------------------------------------

    async def _capture(self, url: str) -> None:
        """Run one capture until end-of-stream, failure or cancellation."""
        timeout = httpx.Timeout(None, connect=self.connect_timeout)

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                transport=self._transport,
                headers=self._headers,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise CaptureError(
                            f"HTTP error: {response.status_code} {response.reason_phrase}"
                        )

                    boundary = require_boundary(response.headers.get("content-type"))
                    self._extractor = BoundaryFrameExtractor(
                        boundary,
                        max_buffer_bytes=self.max_buffer_bytes,
                        trim_to_bytes=self.trim_to_bytes,
                    )
                    logger.info(f"Connected to {url} (boundary={boundary!r})")
                    self._set_status(CaptureStatus.CAPTURING)

                    async for chunk in response.aiter_bytes():
                        self.metrics.bytes_received += len(chunk)
                        for payload in self._extractor.feed(chunk):
                            self._add_frame(payload)

            logger.info(f"Stream ended: {url}")
            self._set_status(CaptureStatus.IDLE)

        except asyncio.CancelledError:
            logger.info("Capture cancelled")
            raise
        except Exception as e:
            self._fail(str(e) or type(e).__name__)

    def _add_frame(self, payload: bytes) -> None:
        if self._time_source is None:
            raise CaptureError("No time source configured")

        timestamp = float(self._time_source())
        frame = Frame.from_payload(payload, timestamp)

        if self.store.insert(frame):
            self.metrics.frames_received += 1
            self.metrics.last_timestamp = timestamp
            logger.debug(f"Captured {frame!r}")
            self._notify()

    def _fail(self, message: str) -> None:
        self.metrics.errors += 1
        self._error = message
        logger.error(f"Capture failed for {self._url}: {message}")
        self._set_status(CaptureStatus.ERROR)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def _set_status(self, status: CaptureStatus) -> None:
        if status != self._status:
            logger.debug(f"Capture status {self._status.value} -> {status.value}")
        self._status = status
        self._notify()

    def _notify(self) -> None:
        if not self._observers:
            return

        state = self.get_state()
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception as e:
                logger.error(f"State observer failed: {e}")
