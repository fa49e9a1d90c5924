"""
mjpeg-timeline - Scrub Viewer
==============================

Architecture:
    Thread 1 (daemon)  : WebSocket reader   -> follows /ws/state
    Thread 2 (daemon)  : HTTP poller        -> fetches /metrics for the captured range
    Main thread        : cv2.imshow render loop, fetches the frame at the playback time

The viewer starts in live-follow mode (always showing the newest frame).
Scrubbing leaves live mode; space returns to it.

Usage:  python viewer.py
Controls: q/ESC quit, a/d scrub back/forward, [ ] change step, space live follow
"""

import json
import os
import threading
import time
from typing import Optional

import cv2
import numpy as np
import requests
from websockets.sync.client import connect as ws_connect


# =============================================================================
# Configuration
# =============================================================================

SERVICE_URL = os.getenv("MJPEG_TIMELINE_SERVICE_URL", "http://localhost:8002")
STATE_WS_URL = SERVICE_URL.replace("http://", "ws://").replace("https://", "wss://") + "/ws/state"
RENDER_INTERVAL_MS = int(os.getenv("MJPEG_TIMELINE_RENDER_INTERVAL_MS", "50"))

SCRUB_STEPS = (0.1, 0.5, 1.0, 5.0, 30.0)


# =============================================================================
# Thread-safe shared state
# =============================================================================

_lock = threading.Lock()
_state = {
    "capture": None,
    "first_timestamp": None,
    "last_timestamp": None,
    "ws_connected": False,
    "service_connected": False,
}


def _get(k):
    with _lock:
        return _state.get(k)


def _set(k, v):
    with _lock:
        _state[k] = v


# =============================================================================
# Scrubbing
# =============================================================================

def scrub_time(
    current: Optional[float],
    step: float,
    first: Optional[float],
    last: Optional[float],
) -> Optional[float]:
    """
    Move the playback time by step, clamped to the captured range.

    Returns None when nothing has been captured yet.
    """
    if first is None or last is None:
        return None
    if current is None:
        current = last
    return min(max(current + step, first), last)


# =============================================================================
# Thread 1 - WebSocket state reader
# =============================================================================

def ws_state_thread():
    while True:
        try:
            with ws_connect(STATE_WS_URL) as ws:
                _set("ws_connected", True)
                print(f"[state] Connected to {STATE_WS_URL}")
                while True:
                    try:
                        raw = ws.recv(timeout=5.0)
                    except TimeoutError:
                        continue
                    _set("capture", json.loads(raw))
        except Exception as e:
            _set("ws_connected", False)
            print(f"[state] Disconnected: {e}. Reconnecting in 1s...")
            time.sleep(1.0)


# =============================================================================
# Thread 2 - HTTP range poller
# =============================================================================

def range_poller_thread():
    while True:
        try:
            r = requests.get(f"{SERVICE_URL}/metrics", timeout=2)
            if r.status_code == 200:
                store = r.json().get("store", {})
                with _lock:
                    _state["first_timestamp"] = store.get("first_timestamp")
                    _state["last_timestamp"] = store.get("last_timestamp")
                    _state["service_connected"] = True
            else:
                _set("service_connected", False)
        except requests.RequestException:
            _set("service_connected", False)
        time.sleep(0.2)


def fetch_frame(playback_time: float) -> Optional[np.ndarray]:
    """Fetch and decode the frame showing at playback_time."""
    try:
        r = requests.get(
            f"{SERVICE_URL}/frames/at/image",
            params={"t": playback_time},
            timeout=2,
        )
    except requests.RequestException:
        return None
    if r.status_code != 200:
        return None
    arr = np.frombuffer(r.content, dtype=np.uint8)
    return cv2.imdecode(arr, cv2.IMREAD_COLOR)


# =============================================================================
# Overlay
# =============================================================================

def draw_status_overlay(canvas, playback_time, live, step):
    capture = _get("capture") or {}
    first = _get("first_timestamp")
    last = _get("last_timestamp")

    status = capture.get("status", "unknown")
    if capture.get("error"):
        color = (0, 0, 220)
    elif capture.get("is_capturing"):
        color = (0, 200, 0)
    else:
        color = (160, 160, 160)

    lines = [
        f"{status.upper()}  {capture.get('frame_count', 0)} frames",
        f"t={playback_time:.2f}s  {'LIVE' if live else 'SCRUB'}  step={step}s" if playback_time is not None else "t=--",
    ]
    if first is not None and last is not None:
        lines.append(f"range {first:.2f}s .. {last:.2f}s")
    if capture.get("error"):
        lines.append(f"error: {capture['error']}")

    y = 24
    for line in lines:
        cv2.putText(canvas, line, (10, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 3)
        cv2.putText(canvas, line, (10, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 1)
        y += 24
    return canvas


# =============================================================================
# Main render loop
# =============================================================================

def main():
    print("=" * 60)
    print("mjpeg-timeline Scrub Viewer")
    print("=" * 60)
    print(f"  Service: {SERVICE_URL}")
    print()
    print("  Controls:")
    print("    q/ESC : quit")
    print("    a / d : scrub back / forward")
    print("    [ / ] : smaller / larger step")
    print("    space : toggle live follow")
    print("=" * 60)

    threading.Thread(target=ws_state_thread, daemon=True).start()
    threading.Thread(target=range_poller_thread, daemon=True).start()

    live = True
    step_index = 1
    playback_time: Optional[float] = None
    display_frame = None

    window_name = "mjpeg-timeline"
    cv2.namedWindow(window_name, cv2.WINDOW_NORMAL)
    cv2.resizeWindow(window_name, 960, 640)

    while True:
        first = _get("first_timestamp")
        last = _get("last_timestamp")
        step = SCRUB_STEPS[step_index]

        if live:
            playback_time = last
        else:
            playback_time = scrub_time(playback_time, 0.0, first, last)

        if playback_time is not None:
            frame = fetch_frame(playback_time)
            if frame is not None:
                display_frame = frame

        if display_frame is not None:
            canvas = draw_status_overlay(display_frame.copy(), playback_time, live, step)
        else:
            canvas = np.full((480, 640, 3), 30, dtype=np.uint8)
            cv2.putText(canvas, "Waiting for frames...", (170, 240),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.8, (100, 100, 100), 2)
            canvas = draw_status_overlay(canvas, playback_time, live, step)
        cv2.imshow(window_name, canvas)

        key = cv2.waitKey(RENDER_INTERVAL_MS) & 0xFF
        if key == ord('q') or key == 27:
            break
        elif key == ord('a'):
            live = False
            playback_time = scrub_time(playback_time, -step, first, last)
        elif key == ord('d'):
            live = False
            playback_time = scrub_time(playback_time, step, first, last)
        elif key == ord('['):
            step_index = max(0, step_index - 1)
        elif key == ord(']'):
            step_index = min(len(SCRUB_STEPS) - 1, step_index + 1)
        elif key == ord(' '):
            live = not live
            print(f"[toggle] live follow: {'ON' if live else 'OFF'}")

    cv2.destroyAllWindows()
    print("\n[viewer] Shutdown.")


if __name__ == "__main__":
    main()
