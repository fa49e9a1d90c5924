"""
Stream URL Validation
=====================

Checks applied to user-supplied URLs before they reach a StreamSession.
"""

from urllib.parse import urlsplit


# Path fragments and ports commonly served by robot and IP cameras
CAMERA_STREAM_PATTERNS = (
    "/stream.mjpg",
    "/mjpg/video.mjpg",
    "/video.mjpg",
    "/stream",
    "/mjpeg",
    "/video",
    ":1181",
    ":1182",
    ":5800",
    ":5801",
)


def is_valid_stream_url(value: object) -> bool:
    """
    Check that value is an absolute http:// or https:// URL with a host.

    Args:
        value: Candidate URL

    Returns:
        True if the URL can be handed to a StreamSession
    """
    if not value or not isinstance(value, str):
        return False

    if not value.startswith(("http://", "https://")):
        return False

    try:
        parts = urlsplit(value)
        # Accessing .port validates the port number
        parts.port
    except ValueError:
        return False

    return bool(parts.hostname)


def looks_like_camera_stream(url: str) -> bool:
    """
    Check whether a valid URL matches a common camera stream pattern.

    Args:
        url: Candidate URL

    Returns:
        True if the URL is valid and contains a known stream path or port
    """
    if not is_valid_stream_url(url):
        return False

    lowered = url.lower()
    return any(pattern in lowered for pattern in CAMERA_STREAM_PATTERNS)
