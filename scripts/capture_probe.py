#!/usr/bin/env python3
"""
Capture Probe
=============

Standalone script to exercise a StreamSession against a real camera.

This script:
    1. Starts capturing the given MJPEG URL
    2. Runs for a configurable duration
    3. Logs capture stats every few seconds
    4. Reports a final summary and scrubs a few timeline points

Prerequisites:
    - An MJPEG endpoint reachable at the given URL
    - Install the package: pip install -e .

Usage:
    python scripts/capture_probe.py --url http://10.0.0.11:1181/stream.mjpg
    python scripts/capture_probe.py --duration 30 --max-frames 200
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from mjpeg_timeline.stream import StreamSession
from mjpeg_timeline.stream.urls import is_valid_stream_url, looks_like_camera_stream
from mjpeg_timeline.timeline import TimelineClock


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_probe(
    url: str,
    duration: int,
    max_frames: int,
    report_interval: int,
) -> dict:
    """
    Capture url for duration seconds and report statistics.

    Args:
        url: MJPEG stream URL
        duration: Probe duration in seconds
        max_frames: Frame history capacity
        report_interval: Seconds between progress reports

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info("MJPEG Capture Probe")
    logger.info("=" * 60)
    logger.info(f"Stream URL: {url}")
    logger.info(f"Duration: {duration} seconds")
    logger.info(f"Max frames: {max_frames}")
    logger.info("=" * 60)

    if not looks_like_camera_stream(url):
        logger.warning("URL does not match a common camera stream path or port")

    clock = TimelineClock()
    session = StreamSession(time_source=clock.now, max_frames=max_frames)

    start_time = time.time()
    last_report_time = start_time
    last_frame_count = 0

    try:
        capture_task = await session.start_capture(url)

        while True:
            elapsed = time.time() - start_time

            if elapsed >= duration:
                logger.info(f"Probe duration ({duration}s) reached")
                break

            if capture_task.done():
                logger.info(f"Capture finished early with status {session.status.value}")
                break

            time_since_report = time.time() - last_report_time
            if time_since_report >= report_interval:
                metrics = session.metrics
                store_metrics = session.store.metrics()
                extractor_metrics = session.extractor_metrics()

                frames_since_last = metrics.frames_received - last_frame_count
                fps = frames_since_last / time_since_report if time_since_report > 0 else 0

                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {elapsed:.0f}s)")
                logger.info(f"  Status: {session.status.value}")
                logger.info(f"  Frames received: {metrics.frames_received}")
                logger.info(f"  Current FPS: {fps:.1f}")
                logger.info(f"  Store size: {store_metrics['size']}/{max_frames}")
                logger.info(f"  Evicted: {store_metrics['evicted_count']}")
                logger.info(f"  Pending bytes: {extractor_metrics.get('pending_bytes', 0)}")
                logger.info(f"  Buffer trims: {extractor_metrics.get('trim_count', 0)}")

                last_report_time = time.time()
                last_frame_count = metrics.frames_received

            await asyncio.sleep(0.5)

    except KeyboardInterrupt:
        logger.info("Probe interrupted by user")
    finally:
        await session.stop_capture()

    total_time = time.time() - start_time
    metrics = session.metrics
    store_metrics = session.store.metrics()
    avg_fps = metrics.frames_received / total_time if total_time > 0 else 0

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Final status: {session.status.value}")
    if session.error:
        logger.info(f"Error: {session.error}")
    logger.info(f"Frames received: {metrics.frames_received}")
    logger.info(f"Average FPS: {avg_fps:.1f}")
    logger.info(f"Bytes received: {metrics.bytes_received}")
    logger.info(f"Frames retained: {store_metrics['size']}")
    logger.info(f"Frames evicted: {store_metrics['evicted_count']}")

    first, last = store_metrics["first_timestamp"], store_metrics["last_timestamp"]
    if first is not None and last is not None:
        for fraction in (0.0, 0.5, 1.0):
            t = first + (last - first) * fraction
            frame = session.frame_at_time(t)
            logger.info(f"  Scrub t={t:.3f}s -> {frame!r}")
    logger.info("=" * 60)

    if metrics.frames_received > 0:
        logger.info("PROBE PASSED - Frames received successfully")
    else:
        logger.error("PROBE FAILED - No frames received")

    result = {
        "duration": total_time,
        "frames_received": metrics.frames_received,
        "avg_fps": avg_fps,
        "frames_retained": store_metrics["size"],
        "frames_evicted": store_metrics["evicted_count"],
        "error": session.error,
    }

    await session.dispose()
    return result


def main():
    parser = argparse.ArgumentParser(
        description="Capture an MJPEG stream and report frame statistics"
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("MJPEG_TIMELINE_STREAM_URL", "http://localhost:1181/stream.mjpg"),
        help="MJPEG stream URL",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=30,
        help="Probe duration in seconds (default: 30)",
    )
    parser.add_argument(
        "--max-frames",
        type=int,
        default=1000,
        help="Frame history capacity (default: 1000)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=5,
        help="Seconds between progress reports (default: 5)",
    )

    args = parser.parse_args()

    if not is_valid_stream_url(args.url):
        parser.error(f"not an http(s) URL: {args.url}")

    result = asyncio.run(run_probe(
        url=args.url,
        duration=args.duration,
        max_frames=args.max_frames,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["frames_received"] > 0 else 1)


if __name__ == "__main__":
    main()
