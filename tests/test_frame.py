"""
Frame and Decoder Tests
=======================

Tests for Frame, RenderHandle and the JPEG decoder.
"""

import numpy as np
import pytest

from mjpeg_timeline.stream.frame import Frame, HandleReleasedError, RenderHandle
from mjpeg_timeline.stream.image_decoder import (
    ImageDecodeError,
    decode_jpeg_bgr,
    get_jpeg_dimensions,
)

from conftest import make_jpeg


class TestRenderHandle:
    """Tests for handle validity and release."""

    def test_release_exactly_once(self):
        handle = RenderHandle(b"\xff\xd8\xff\xd9")

        assert handle.valid
        assert handle.release_count == 0
        assert handle.release() is True
        assert handle.release() is False
        assert handle.release_count == 1
        assert not handle.valid

    def test_unique_ids(self):
        assert RenderHandle(b"a").handle_id != RenderHandle(b"a").handle_id

    def test_image_decodes_and_caches(self):
        handle = RenderHandle(make_jpeg(width=40, height=30))
        assert not handle.decoded

        image = handle.image()
        assert handle.decoded
        assert image.shape == (30, 40, 3)
        assert image.dtype == np.uint8
        assert handle.image() is image

    def test_use_after_release(self):
        handle = RenderHandle(make_jpeg())
        handle.release()

        with pytest.raises(HandleReleasedError):
            handle.jpeg()
        with pytest.raises(HandleReleasedError):
            handle.image()


class TestFrame:
    """Tests for the Frame data model."""

    def test_from_payload(self):
        payload = make_jpeg()
        frame = Frame.from_payload(payload, 12.5)

        assert frame.timestamp == 12.5
        assert frame.payload == payload
        assert frame.size == len(payload)
        assert frame.handle.jpeg() == payload

    def test_frozen(self):
        frame = Frame.from_payload(b"\xff\xd8\xff\xd9", 1.0)
        with pytest.raises(AttributeError):
            frame.timestamp = 2.0

    def test_repr_hides_payload(self):
        frame = Frame.from_payload(b"\xff\xd8" + b"x" * 500 + b"\xff\xd9", 1.0)
        text = repr(frame)
        assert "xxxx" not in text
        assert "size=504" in text


class TestImageDecoder:
    """Tests for JPEG decoding helpers."""

    def test_decode_bgr(self):
        data = make_jpeg(width=16, height=8)

        assert decode_jpeg_bgr(data).shape == (8, 16, 3)

    @pytest.mark.parametrize("data", [b"", b"not a jpeg", b"\xff\xd8\xff\xd9"])
    def test_corrupt_payload(self, data):
        with pytest.raises(ImageDecodeError):
            decode_jpeg_bgr(data)

    def test_dimensions(self):
        assert get_jpeg_dimensions(make_jpeg(width=20, height=10)) == (10, 20)
        assert get_jpeg_dimensions(b"garbage") is None
