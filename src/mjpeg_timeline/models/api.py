"""
API Schemas
===========

Request and response bodies for the HTTP surface in main.py.
"""

from typing import Optional

from pydantic import BaseModel, Field


class StartCaptureRequest(BaseModel):
    """Body of POST /capture/start."""

    url: str = Field(..., min_length=1, description="http(s) MJPEG stream URL")


class TimelineSyncRequest(BaseModel):
    """
    Body of POST /timeline/sync.

    Attributes:
        log_time: Log timestamp that corresponds to "now"
        running: Whether log time advances from here (False = paused)
    """

    log_time: float = Field(..., description="Log time in seconds")
    running: bool = Field(default=True, description="Advance with real time")


class FrameInfo(BaseModel):
    """Metadata describing one retained frame."""

    index: int = Field(..., ge=0, description="Position in the store (0 = oldest)")
    timestamp: float = Field(..., description="Logical capture time in seconds")
    size_bytes: int = Field(..., ge=0, description="JPEG payload size")
    handle_id: str = Field(..., description="Opaque render handle identifier")
    width: Optional[int] = Field(default=None, description="Image width in pixels")
    height: Optional[int] = Field(default=None, description="Image height in pixels")


class ClearResult(BaseModel):
    """Response of DELETE /frames."""

    cleared: int = Field(..., ge=0, description="Number of frames released")
