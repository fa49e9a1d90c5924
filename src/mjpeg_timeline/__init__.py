"""
mjpeg-timeline
==============

Capture a live MJPEG stream into a bounded, time-indexed frame history.

This package captures multipart MJPEG over HTTP, splits it into JPEG frames,
stamps each frame with a logical timestamp and answers "what did the camera
show at time T" for scrubbable playback.

Components:
    - stream: Extraction, frame store and capture session
    - timeline: Live and log-synchronized time sources
    - models: Pydantic state and API schemas
    - main: FastAPI surface over one capture session

Example:
    from mjpeg_timeline.stream import StreamSession
    from mjpeg_timeline.timeline import TimelineClock

    clock = TimelineClock()
    async with StreamSession(time_source=clock.now) as session:
        task = await session.start_capture(url)
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
