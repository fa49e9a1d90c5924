"""
mjpeg-timeline Configuration
============================

This module handles configuration loading for the capture service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    MJPEG_TIMELINE_STREAM_URL     -> capture.default_url
    MJPEG_TIMELINE_AUTOSTART      -> capture.autostart
    MJPEG_TIMELINE_MAX_FRAMES     -> capture.max_frames
    MJPEG_TIMELINE_TIMELINE_MODE  -> timeline.mode
    MJPEG_TIMELINE_PORT           -> server.port
    MJPEG_TIMELINE_LOG_LEVEL      -> logging.level
    PORT                          -> server.port (Cloud Run)

Example:
    from mjpeg_timeline.config import settings

    print(settings.capture.max_frames)
    print(settings.timeline.mode)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from mjpeg_timeline.timeline import TimelineMode


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="mjpeg-timeline", description="Service name")
    version: str = Field(default="v0.1.0", description="API version")


class CaptureConfig(BaseModel):
    """MJPEG capture configuration."""

    default_url: Optional[str] = Field(
        default=None,
        description="Stream URL captured on startup when autostart is set",
    )
    autostart: bool = Field(
        default=False,
        description="Start capturing default_url when the service starts",
    )
    max_frames: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of frames retained (oldest evicted first)",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Connection timeout; reads never time out",
    )
    max_buffer_bytes: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Unconsumed stream bytes allowed before trimming",
    )
    trim_to_bytes: int = Field(
        default=512 * 1024,
        ge=512,
        description="Bytes kept from the tail when the buffer is trimmed",
    )


class TimelineConfig(BaseModel):
    """Timestamp source configuration."""

    mode: TimelineMode = Field(
        default=TimelineMode.LIVE,
        description="Time domain: 'live' (elapsed seconds) or 'log' (synced)",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for mjpeg-timeline.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    timeline: TimelineConfig = Field(default_factory=TimelineConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    # Build settings object
    settings = Settings.model_validate(config_data)

    return settings


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Capture settings
    if env_url := os.environ.get("MJPEG_TIMELINE_STREAM_URL"):
        config_data.setdefault("capture", {})["default_url"] = env_url
    if env_autostart := os.environ.get("MJPEG_TIMELINE_AUTOSTART"):
        config_data.setdefault("capture", {})["autostart"] = (
            env_autostart.strip().lower() in ("1", "true", "yes", "on")
        )
    if env_max := os.environ.get("MJPEG_TIMELINE_MAX_FRAMES"):
        config_data.setdefault("capture", {})["max_frames"] = int(env_max)

    # Timeline settings
    if env_mode := os.environ.get("MJPEG_TIMELINE_TIMELINE_MODE"):
        config_data.setdefault("timeline", {})["mode"] = env_mode.strip().lower()

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("MJPEG_TIMELINE_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("MJPEG_TIMELINE_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
