"""
Stream Session Tests
====================

Tests for the capture lifecycle against a mocked camera.
"""

import asyncio

import httpx
import pytest

from mjpeg_timeline.models.state import CaptureStatus
from mjpeg_timeline.stream.session import SessionDisposedError, StreamSession

from conftest import chunked, mjpeg_transport, multipart_body, wait_for


def record_statuses(session: StreamSession) -> list:
    states = []
    session.add_observer(states.append)
    return states


def statuses(states) -> list:
    """Collapse consecutive duplicates (frame notifications)."""
    result = []
    for state in states:
        if not result or result[-1] != state.status:
            result.append(state.status)
    return result


class TestCapture:
    """Tests for a normal capture run."""

    @pytest.mark.asyncio
    async def test_captures_all_frames_in_order(self, jpeg_payloads, fake_clock, stream_url):
        body = multipart_body(jpeg_payloads)
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport(chunked(body, 100)),
        )
        states = record_statuses(session)

        task = await session.start_capture(stream_url)
        await task

        assert session.frame_count == 3
        assert [session.frame_at_index(i).payload for i in range(3)] == jpeg_payloads
        assert [session.frame_at_index(i).timestamp for i in range(3)] == [1.0, 2.0, 3.0]
        assert statuses(states) == [
            CaptureStatus.CONNECTING,
            CaptureStatus.CAPTURING,
            CaptureStatus.IDLE,
        ]
        assert session.error is None

    @pytest.mark.asyncio
    async def test_notifies_after_every_frame(self, jpeg_payloads, fake_clock, stream_url):
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads)]),
        )
        states = record_statuses(session)

        await (await session.start_capture(stream_url))

        counts = [s.frame_count for s in states if s.status == CaptureStatus.CAPTURING]
        assert counts == [0, 1, 2, 3]
        assert states[-1].url == stream_url
        assert states[-1].is_capturing is False

    @pytest.mark.asyncio
    async def test_lookup_by_time(self, jpeg_payloads, fake_clock, stream_url):
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads)]),
        )

        await (await session.start_capture(stream_url))

        assert session.frame_at_time(0.5) is None
        assert session.frame_at_time(2.5).payload == jpeg_payloads[1]
        assert session.frame_at_time(99.0).payload == jpeg_payloads[2]

    @pytest.mark.asyncio
    async def test_frame_visible_while_stream_stays_open(self, jpeg_payloads, fake_clock, stream_url):
        stall = asyncio.Event()
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads[:1])], stall=stall),
        )

        await session.start_capture(stream_url)
        await wait_for(lambda: session.frame_count == 1, timeout=1.0)

        assert session.status == CaptureStatus.CAPTURING
        assert session.frame_at_time(1.0).payload == jpeg_payloads[0]
        await session.dispose()

    @pytest.mark.asyncio
    async def test_eviction_during_capture(self, jpeg_payloads, fake_clock, stream_url):
        session = StreamSession(
            time_source=fake_clock,
            max_frames=2,
            transport=mjpeg_transport([multipart_body(jpeg_payloads * 2)]),
        )

        await (await session.start_capture(stream_url))

        assert session.frame_count == 2
        assert [f.timestamp for f in session.store.snapshot()] == [5.0, 6.0]
        assert session.metrics.frames_received == 6

    @pytest.mark.asyncio
    async def test_metrics(self, jpeg_payloads, fake_clock, stream_url):
        body = multipart_body(jpeg_payloads)
        session = StreamSession(time_source=fake_clock, transport=mjpeg_transport([body]))

        await (await session.start_capture(stream_url))

        metrics = session.metrics.to_dict()
        assert metrics["captures_started"] == 1
        assert metrics["frames_received"] == 3
        assert metrics["bytes_received"] == len(body)
        assert metrics["last_timestamp"] == 3.0
        assert session.extractor_metrics()["frames_extracted"] == 3


class TestFailures:
    """Tests for error states."""

    @pytest.mark.asyncio
    async def test_http_404(self, fake_clock, stream_url):
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([], status_code=404),
        )
        states = record_statuses(session)

        await (await session.start_capture(stream_url))

        assert statuses(states) == [CaptureStatus.CONNECTING, CaptureStatus.ERROR]
        assert session.status == CaptureStatus.ERROR
        assert session.error == "HTTP error: 404 Not Found"
        assert session.metrics.errors == 1

    @pytest.mark.asyncio
    async def test_missing_boundary(self, jpeg_payloads, fake_clock, stream_url):
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([jpeg_payloads[0]], boundary=None),
        )
        states = record_statuses(session)

        await (await session.start_capture(stream_url))

        assert CaptureStatus.CAPTURING not in statuses(states)
        assert session.status == CaptureStatus.ERROR
        assert "boundary" in session.error
        assert session.frame_count == 0

    @pytest.mark.asyncio
    async def test_connection_error(self, fake_clock, stream_url):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        session = StreamSession(time_source=fake_clock, transport=httpx.MockTransport(handler))

        await (await session.start_capture(stream_url))

        assert session.status == CaptureStatus.ERROR
        assert session.error == "Connection refused"

    @pytest.mark.asyncio
    async def test_frames_survive_error(self, jpeg_payloads, fake_clock, stream_url):
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads)]),
        )
        await (await session.start_capture(stream_url))

        session._transport = mjpeg_transport([], status_code=500)
        await (await session.start_capture(stream_url))

        assert session.status == CaptureStatus.ERROR
        assert session.frame_count == 3
        assert session.frame_at_time(2.0).payload == jpeg_payloads[1]

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_stop_capture(self, jpeg_payloads, fake_clock, stream_url):
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads)]),
        )

        def broken(state):
            raise RuntimeError("observer bug")

        session.add_observer(broken)
        await (await session.start_capture(stream_url))

        assert session.frame_count == 3
        assert session.status == CaptureStatus.IDLE


class TestLifecycle:
    """Tests for stop, replace, clear and dispose."""

    @pytest.mark.asyncio
    async def test_stop_cancels_stalled_stream(self, jpeg_payloads, fake_clock, stream_url):
        stall = asyncio.Event()
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads[:1])], stall=stall),
        )
        states = record_statuses(session)

        task = await session.start_capture(stream_url)
        await wait_for(lambda: session.frame_count == 1)
        assert session.status == CaptureStatus.CAPTURING

        await asyncio.wait_for(session.stop_capture(), timeout=1.0)

        assert task.cancelled()
        assert session.status == CaptureStatus.IDLE
        assert session.error is None
        assert session.frame_count == 1
        assert all(s.error is None for s in states)

    @pytest.mark.asyncio
    async def test_start_replaces_running_capture(self, jpeg_payloads, fake_clock, stream_url):
        stall = asyncio.Event()
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads[:1])], stall=stall),
        )
        first = await session.start_capture(stream_url)
        await wait_for(lambda: session.frame_count == 1)

        session._transport = mjpeg_transport([multipart_body(jpeg_payloads[1:])])
        second = await session.start_capture("http://other.test/video")
        await second

        assert first.cancelled()
        assert session.url == "http://other.test/video"
        assert session.frame_count == 3
        assert session.metrics.captures_started == 2

    @pytest.mark.asyncio
    async def test_overlapping_starts_keep_one_capture(self, jpeg_payloads, fake_clock):
        stall = asyncio.Event()
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads[:1])], stall=stall),
        )

        first, second = await asyncio.gather(
            session.start_capture("http://a.test/video"),
            session.start_capture("http://b.test/video"),
        )

        assert first is not second
        assert first.done()
        assert session.url == "http://b.test/video"

        await wait_for(lambda: session.status == CaptureStatus.CAPTURING)
        await session.stop_capture()

        assert second.done()
        assert session.status == CaptureStatus.IDLE
        assert session.metrics.captures_started == 2

    @pytest.mark.asyncio
    async def test_cancelled_stop_propagates_to_caller(self, jpeg_payloads, fake_clock, stream_url):
        stall = asyncio.Event()
        linger = asyncio.Event()
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport(
                [multipart_body(jpeg_payloads[:1])], stall=stall, linger=linger
            ),
        )
        task = await session.start_capture(stream_url)
        await wait_for(lambda: session.frame_count == 1)

        stopper = asyncio.create_task(session.stop_capture())
        await asyncio.sleep(0.05)
        stopper.cancel()

        with pytest.raises(asyncio.CancelledError):
            await stopper

        linger.set()
        await asyncio.wait({task}, timeout=1.0)
        assert task.cancelled()

        await session.stop_capture()
        assert session.status == CaptureStatus.IDLE

    @pytest.mark.asyncio
    async def test_restart_after_error_clears_message(self, jpeg_payloads, fake_clock, stream_url):
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([], status_code=503),
        )
        await (await session.start_capture(stream_url))
        assert session.error

        session._transport = mjpeg_transport([multipart_body(jpeg_payloads)])
        await (await session.start_capture(stream_url))

        assert session.error is None
        assert session.status == CaptureStatus.IDLE
        assert session.frame_count == 3

    @pytest.mark.asyncio
    async def test_clear_frames_keeps_capturing(self, jpeg_payloads, fake_clock, stream_url):
        stall = asyncio.Event()
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads)], stall=stall),
        )
        await session.start_capture(stream_url)
        await wait_for(lambda: session.frame_count == 3)
        handles = [f.handle for f in session.store.snapshot()]

        assert session.clear_frames() == 3

        assert session.frame_count == 0
        assert session.status == CaptureStatus.CAPTURING
        assert not any(h.valid for h in handles)
        await session.dispose()

    @pytest.mark.asyncio
    async def test_dispose(self, jpeg_payloads, fake_clock, stream_url):
        stall = asyncio.Event()
        session = StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads)], stall=stall),
        )
        states = record_statuses(session)
        task = await session.start_capture(stream_url)
        await wait_for(lambda: session.frame_count == 3)
        handles = [f.handle for f in session.store.snapshot()]

        await session.dispose()
        notified = len(states)

        assert task.done()
        assert session.disposed
        assert session.frame_count == 0
        assert all(h.release_count == 1 for h in handles)
        assert session.clear_frames() == 0
        assert len(states) == notified

        with pytest.raises(SessionDisposedError):
            await session.start_capture(stream_url)

        await session.dispose()

    @pytest.mark.asyncio
    async def test_async_context_manager(self, jpeg_payloads, fake_clock, stream_url):
        async with StreamSession(
            time_source=fake_clock,
            transport=mjpeg_transport([multipart_body(jpeg_payloads)]),
        ) as session:
            await (await session.start_capture(stream_url))
            assert session.frame_count == 3

        assert session.disposed
        assert session.frame_count == 0

    @pytest.mark.asyncio
    async def test_set_time_source(self, jpeg_payloads, stream_url):
        session = StreamSession(
            time_source=lambda: 0.0,
            transport=mjpeg_transport([multipart_body(jpeg_payloads)]),
        )
        session.set_time_source(lambda: 42.0)

        await (await session.start_capture(stream_url))

        assert {f.timestamp for f in session.store.snapshot()} == {42.0}
        assert session.frame_at_time(42.0) is session.frame_at_index(2)
