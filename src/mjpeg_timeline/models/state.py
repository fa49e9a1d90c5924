"""
Capture State Models
====================

This module defines the observable state of a stream capture session.

Lifecycle:
    idle -> connecting -> capturing -> idle      (stopped / stream ended)
    connecting or capturing -> error             (fatal failure)
    error and idle both accept a fresh start.

Example:
    from mjpeg_timeline.models.state import CaptureState, CaptureStatus

    state = CaptureState(
        url="http://camera.local/stream.mjpg",
        status=CaptureStatus.CAPTURING,
        frame_count=42,
    )
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CaptureStatus(str, Enum):
    """
    Discrete lifecycle states of a stream session.

    Attributes:
        IDLE: Not capturing (never started, stopped, or stream ended)
        CONNECTING: Request sent, waiting for headers
        CAPTURING: Boundary parsed, read loop running
        ERROR: Capture failed; frames captured so far remain queryable
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CAPTURING = "capturing"
    ERROR = "error"


class CaptureState(BaseModel):
    """
    Snapshot handed to state-change observers.

    Attributes:
        url: Stream URL of the current or last capture
        status: Lifecycle state
        is_capturing: True while connecting or capturing
        frame_count: Frames currently held in the store
        error: Human-readable failure message, None unless status is ERROR
    """

    url: str = Field(default="", description="MJPEG stream URL")

    status: CaptureStatus = Field(
        default=CaptureStatus.IDLE,
        description="Session lifecycle state",
    )

    is_capturing: bool = Field(
        default=False,
        description="Whether capture is active (connecting or capturing)",
    )

    frame_count: int = Field(
        default=0,
        ge=0,
        description="Number of frames currently retained",
    )

    error: Optional[str] = Field(
        default=None,
        description="Error message if capture failed",
    )
