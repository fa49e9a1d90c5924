"""
mjpeg-timeline Main Application
===============================

FastAPI entry point exposing one StreamSession to playback clients.

Endpoints:
    GET    /                    - Service information
    GET    /health              - Liveness probe
    GET    /metrics             - Capture, store and extractor metrics
    GET    /state               - Current CaptureState
    POST   /capture/start       - Start (or replace) capture of a URL
    POST   /capture/stop        - Stop capture, keep frames
    DELETE /frames              - Release all retained frames
    GET    /frames/count        - Number of retained frames
    GET    /frames/at?t=        - Frame showing at playback time t
    GET    /frames/at/image?t=  - JPEG of that frame
    GET    /frames/{index}      - Frame by position (0 = oldest)
    GET    /frames/{index}/image - JPEG of that frame
    GET    /timeline            - Timeline clock state
    POST   /timeline/sync       - Align the clock with log time
    DELETE /timeline/sync       - Return the clock to live mode
    WS     /ws/state            - CaptureState pushed on every change
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Set

import httpx
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response

from mjpeg_timeline.config import settings
from mjpeg_timeline.models import (
    CaptureState,
    ClearResult,
    FrameInfo,
    StartCaptureRequest,
    TimelineSyncRequest,
)
from mjpeg_timeline.stream import (
    Frame,
    HandleReleasedError,
    StreamSession,
)
from mjpeg_timeline.stream.image_decoder import get_jpeg_dimensions
from mjpeg_timeline.stream.urls import is_valid_stream_url
from mjpeg_timeline.timeline import TimelineClock


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_clock: Optional[TimelineClock] = None
_session: Optional[StreamSession] = None
_state_queues: Set[asyncio.Queue] = set()
_startup_time: float = 0.0

STATE_QUEUE_SIZE = 100


# =============================================================================
# Getters
# =============================================================================

def get_clock() -> TimelineClock:
    if _clock is None:
        raise HTTPException(status_code=503, detail="Service not started")
    return _clock

def get_session() -> StreamSession:
    if _session is None:
        raise HTTPException(status_code=503, detail="Service not started")
    return _session


# =============================================================================
# Session Factory
# =============================================================================

def create_session(
    clock: TimelineClock,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StreamSession:
    """Create a StreamSession from config, stamping frames with clock."""
    session = StreamSession(
        time_source=clock.now,
        max_frames=settings.capture.max_frames,
        connect_timeout=settings.capture.connect_timeout_seconds,
        max_buffer_bytes=settings.capture.max_buffer_bytes,
        trim_to_bytes=settings.capture.trim_to_bytes,
        transport=transport,
    )
    session.add_observer(_broadcast_state)
    return session


def _broadcast_state(state: CaptureState) -> None:
    """Fan a state change out to every /ws/state client."""
    for queue in list(_state_queues):
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        queue.put_nowait(state)


def _frame_info(index: int, frame: Frame) -> FrameInfo:
    width: Optional[int] = None
    height: Optional[int] = None
    try:
        dimensions = get_jpeg_dimensions(frame.handle.jpeg())
    except HandleReleasedError as e:
        logger.debug(f"No dimensions for {frame!r}: {e}")
        dimensions = None
    if dimensions is not None:
        height, width = dimensions

    return FrameInfo(
        index=index,
        timestamp=frame.timestamp,
        size_bytes=frame.size,
        handle_id=frame.handle.handle_id,
        width=width,
        height=height,
    )


def _jpeg_response(frame: Frame) -> Response:
    try:
        data = frame.handle.jpeg()
    except HandleReleasedError:
        raise HTTPException(status_code=410, detail="Frame is no longer retained")

    return Response(
        content=data,
        media_type="image/jpeg",
        headers={
            "X-Frame-Timestamp": f"{frame.timestamp:.6f}",
            "Cache-Control": "no-store",
        },
    )


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _clock, _session, _startup_time

    # Startup
    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    _clock = TimelineClock(mode=settings.timeline.mode)
    _session = create_session(_clock)

    default_url = settings.capture.default_url
    if settings.capture.autostart and default_url:
        if is_valid_stream_url(default_url):
            await _session.start_capture(default_url)
        else:
            logger.error(f"Ignoring invalid default stream URL: {default_url}")

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")
    if _session is not None:
        await _session.dispose()
    _state_queues.clear()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="mjpeg-timeline",
    description="MJPEG stream capture with a scrubbable frame history",
    version=settings.service.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "max_frames": settings.capture.max_frames,
        "timeline_mode": get_clock().mode.value,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always 200 while the process is serving."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    session = get_session()
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "status": session.status.value,
        "session": session.metrics.to_dict(),
        "store": session.store.metrics(),
        "extractor": session.extractor_metrics(),
        "ws_clients": len(_state_queues),
    })


@app.get("/state", response_model=CaptureState)
async def state() -> CaptureState:
    """Current capture state."""
    return get_session().get_state()


@app.post("/capture/start", response_model=CaptureState)
async def start_capture(request: StartCaptureRequest) -> CaptureState:
    """Start capturing a stream; any running capture is replaced."""
    url = request.url.strip()
    if not is_valid_stream_url(url):
        raise HTTPException(
            status_code=400,
            detail="Stream URL must be an http:// or https:// URL",
        )

    session = get_session()
    await session.start_capture(url)
    return session.get_state()


@app.post("/capture/stop", response_model=CaptureState)
async def stop_capture() -> CaptureState:
    """Stop capturing. Retained frames stay queryable."""
    session = get_session()
    await session.stop_capture()
    return session.get_state()


@app.delete("/frames", response_model=ClearResult)
async def clear_frames() -> ClearResult:
    """Release every retained frame."""
    return ClearResult(cleared=get_session().clear_frames())


@app.get("/frames/count")
async def frame_count() -> JSONResponse:
    return JSONResponse({"frame_count": get_session().frame_count})


@app.get("/frames/at", response_model=FrameInfo)
async def frame_at_time(t: float = Query(..., description="Playback time")) -> FrameInfo:
    """Metadata of the frame showing at playback time t."""
    located = get_session().store.locate(t)
    if located is None:
        raise HTTPException(status_code=404, detail=f"No frame at or before t={t}")
    index, frame = located
    return _frame_info(index, frame)


@app.get("/frames/at/image")
async def frame_image_at_time(t: float = Query(..., description="Playback time")) -> Response:
    """JPEG of the frame showing at playback time t."""
    frame = get_session().frame_at_time(t)
    if frame is None:
        raise HTTPException(status_code=404, detail=f"No frame at or before t={t}")
    return _jpeg_response(frame)


@app.get("/frames/{index}", response_model=FrameInfo)
async def frame_at_index(index: int) -> FrameInfo:
    """Metadata of the frame at a store position."""
    frame = get_session().frame_at_index(index)
    if frame is None:
        raise HTTPException(status_code=404, detail=f"No frame at index {index}")
    return _frame_info(index, frame)


@app.get("/frames/{index}/image")
async def frame_image_at_index(index: int) -> Response:
    """JPEG of the frame at a store position."""
    frame = get_session().frame_at_index(index)
    if frame is None:
        raise HTTPException(status_code=404, detail=f"No frame at index {index}")
    return _jpeg_response(frame)


@app.get("/timeline")
async def timeline() -> JSONResponse:
    """Timeline clock state."""
    return JSONResponse(get_clock().to_dict())


@app.post("/timeline/sync")
async def timeline_sync(request: TimelineSyncRequest) -> JSONResponse:
    """Stamp subsequent frames in log time, starting at request.log_time."""
    clock = get_clock()
    clock.sync(request.log_time, running=request.running)
    return JSONResponse(clock.to_dict())


@app.delete("/timeline/sync")
async def timeline_reset() -> JSONResponse:
    """Return to live timestamps."""
    clock = get_clock()
    clock.reset()
    return JSONResponse(clock.to_dict())


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/state")
async def state_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint pushing every CaptureState change."""
    await websocket.accept()
    logger.info("Client connected to /ws/state")

    queue: asyncio.Queue = asyncio.Queue(maxsize=STATE_QUEUE_SIZE)
    _state_queues.add(queue)

    try:
        await websocket.send_json(get_session().get_state().model_dump(mode="json"))
        while True:
            current = await queue.get()
            await websocket.send_json(current.model_dump(mode="json"))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        _state_queues.discard(queue)
        logger.info("Client disconnected from /ws/state")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "mjpeg_timeline.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
