"""
Data Models
===========

Pydantic models for mjpeg-timeline.

This module re-exports all data models for convenient access.

Models:
    State:
        - CaptureStatus: Session lifecycle states
        - CaptureState: Snapshot pushed to observers

    API:
        - StartCaptureRequest, TimelineSyncRequest: Request bodies
        - FrameInfo, ClearResult: Response bodies
"""

from mjpeg_timeline.models.state import CaptureState, CaptureStatus
from mjpeg_timeline.models.api import (
    ClearResult,
    FrameInfo,
    StartCaptureRequest,
    TimelineSyncRequest,
)

__all__ = [
    # State
    "CaptureStatus",
    "CaptureState",
    # API
    "StartCaptureRequest",
    "TimelineSyncRequest",
    "FrameInfo",
    "ClearResult",
]
