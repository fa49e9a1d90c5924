"""
Test Configuration
==================

Pytest fixtures and test configuration for mjpeg-timeline.
"""

import asyncio
from typing import Callable, Iterable, List, Optional

import cv2
import httpx
import numpy as np
import pytest


def make_jpeg(width: int = 32, height: int = 24, color=(0, 128, 255)) -> bytes:
    """Encode a solid-color image as JPEG bytes."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = color
    ok, encoded = cv2.imencode(".jpg", image)
    assert ok
    return encoded.tobytes()


def multipart_body(payloads: Iterable[bytes], boundary: str = "myboundary") -> bytes:
    """Build an MJPEG multipart body the way IP cameras send it."""
    parts = []
    for payload in payloads:
        parts.append(
            f"--{boundary}\r\n"
            f"Content-Type: image/jpeg\r\n"
            f"Content-Length: {len(payload)}\r\n\r\n".encode()
            + payload
            + b"\r\n"
        )
    return b"".join(parts)


def chunked(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


def mjpeg_transport(
    chunks: Iterable[bytes],
    boundary: Optional[str] = "myboundary",
    status_code: int = 200,
    stall: Optional[asyncio.Event] = None,
    linger: Optional[asyncio.Event] = None,
) -> httpx.MockTransport:
    """
    Mock camera: serves chunks as a streaming multipart response.

    If stall is given, the body blocks on it after the last chunk,
    like a live stream that stays open. If linger is given, a cancelled
    body waits on it before unwinding, like a slow connection teardown.
    """
    chunks = list(chunks)
    content_type = (
        f"multipart/x-mixed-replace; boundary={boundary}"
        if boundary is not None
        else "image/jpeg"
    )

    async def body():
        for chunk in chunks:
            yield chunk
            await asyncio.sleep(0)
        if stall is not None:
            try:
                await stall.wait()
            finally:
                if linger is not None:
                    await linger.wait()

    def handler(request: httpx.Request) -> httpx.Response:
        if status_code != 200:
            return httpx.Response(status_code)
        return httpx.Response(
            200,
            headers={"Content-Type": content_type},
            content=body(),
        )

    return httpx.MockTransport(handler)


class FakeClock:
    """Deterministic time source: 1.0, 2.0, 3.0, ... per call."""

    def __init__(self, start: float = 1.0, step: float = 1.0) -> None:
        self.value = start - step
        self.step = step

    def __call__(self) -> float:
        self.value += self.step
        return self.value


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def jpeg_payloads() -> List[bytes]:
    """Three distinct real JPEG images."""
    return [
        make_jpeg(color=(255, 0, 0)),
        make_jpeg(color=(0, 255, 0)),
        make_jpeg(width=48, height=16, color=(0, 0, 255)),
    ]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stream_url() -> str:
    return "http://camera.test:1181/stream.mjpg"
