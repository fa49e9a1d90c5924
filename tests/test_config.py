"""
Configuration Tests
===================

Tests for YAML loading and environment overrides.
"""

import pytest
from pydantic import ValidationError

from mjpeg_timeline.config import Settings, load_config
from mjpeg_timeline.timeline import TimelineMode


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "MJPEG_TIMELINE_STREAM_URL",
        "MJPEG_TIMELINE_AUTOSTART",
        "MJPEG_TIMELINE_MAX_FRAMES",
        "MJPEG_TIMELINE_TIMELINE_MODE",
        "MJPEG_TIMELINE_PORT",
        "MJPEG_TIMELINE_LOG_LEVEL",
        "PORT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        settings = Settings()

        assert settings.capture.max_frames == 1000
        assert settings.capture.max_buffer_bytes == 1024 * 1024
        assert settings.capture.trim_to_bytes == 512 * 1024
        assert settings.capture.autostart is False
        assert settings.timeline.mode == TimelineMode.LIVE

    def test_max_frames_validation(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"capture": {"max_frames": 0}})


class TestLoading:
    """Tests for YAML and environment sources."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "capture:\n"
            "  max_frames: 250\n"
            "  default_url: http://cam.local/video\n"
            "timeline:\n"
            "  mode: log\n"
        )

        settings = load_config(str(path))

        assert settings.capture.max_frames == 250
        assert settings.capture.default_url == "http://cam.local/video"
        assert settings.timeline.mode == TimelineMode.LOG

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("capture:\n  max_frames: 250\n")
        monkeypatch.setenv("MJPEG_TIMELINE_MAX_FRAMES", "42")
        monkeypatch.setenv("MJPEG_TIMELINE_AUTOSTART", "true")
        monkeypatch.setenv("MJPEG_TIMELINE_STREAM_URL", "http://env.local/stream")
        monkeypatch.setenv("MJPEG_TIMELINE_PORT", "9000")

        settings = load_config(str(path))

        assert settings.capture.max_frames == 42
        assert settings.capture.autostart is True
        assert settings.capture.default_url == "http://env.local/stream"
        assert settings.server.port == 9000

    def test_cloud_run_port_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("MJPEG_TIMELINE_PORT", "9000")

        settings = load_config(str(tmp_path / "missing.yaml"))

        assert settings.server.port == 8080
