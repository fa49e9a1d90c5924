"""
Stream Module
=============

MJPEG capture, frame extraction and time-indexed frame history.

This module provides the capture pipeline for mjpeg-timeline:
    - Frame / RenderHandle: Captured JPEG plus its ownership-tracked handle
    - BoundaryFrameExtractor: Multipart byte stream -> JPEG payloads
    - FrameStore: Bounded, time-ordered history with as-of-time lookup
    - StreamSession: HTTP capture lifecycle feeding a FrameStore

Example:
    from mjpeg_timeline.stream import StreamSession
    from mjpeg_timeline.timeline import TimelineClock

    clock = TimelineClock()
    session = StreamSession(time_source=clock.now, max_frames=1000)

    # Run capture as background task
    task = await session.start_capture("http://camera.local/stream.mjpg")

    # Scrub the timeline
    frame = session.frame_at_time(clock.now() - 5.0)
"""

from mjpeg_timeline.stream.frame import Frame, HandleReleasedError, RenderHandle
from mjpeg_timeline.stream.extractor import (
    BoundaryFrameExtractor,
    BoundaryParseError,
    ExtractResult,
    extract_next,
    parse_boundary,
    require_boundary,
)
from mjpeg_timeline.stream.store import FrameStore
from mjpeg_timeline.stream.session import (
    CaptureError,
    SessionDisposedError,
    StreamSession,
    StreamSessionMetrics,
)


__all__ = [
    "Frame",
    "RenderHandle",
    "HandleReleasedError",
    "BoundaryFrameExtractor",
    "BoundaryParseError",
    "ExtractResult",
    "extract_next",
    "parse_boundary",
    "require_boundary",
    "FrameStore",
    "StreamSession",
    "StreamSessionMetrics",
    "CaptureError",
    "SessionDisposedError",
]
