"""Runtime settings: built-in defaults, settings file and environment."""

import logging
import os
import pathlib
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

import yaml

from .types import StreamURL

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "settings.yaml"
DEFAULT_STREAM_URL = "https://worldofwow.dev/assets/streams/example.html"
DEFAULT_STREAM_BITRATE_KBPS = 2800


class ConfigurationError(ValueError):
    """Raised when the settings cannot describe a runnable test."""


@dataclass(frozen=True)
class Settings:
    """
    Settings for one stress-test run.

    Attributes:
        stream_url: Page hosting the player under test (required).
        stream_bitrate_kbps: Bitrate of one stream, used to size the fleet.
        bandwidth_safety_margin: Fraction of measured bandwidth treated as usable.
        launch_delay_ms: Wait between consecutive browser launches.
        max_browsers: Manual session budget, overrides the estimate.
        buffering_threshold_ms: Stall duration considered buffering.
        health_check_interval_ms: Interval between fleet health sweeps.
        headless: Run browsers without a window.
        viewport_width: Browser viewport width in pixels.
        viewport_height: Browser viewport height in pixels.
        page_load_timeout_ms: Navigation timeout.
        video_play_timeout_ms: How long to wait for playback to start.
    """

    stream_url: StreamURL = ""
    stream_bitrate_kbps: int = DEFAULT_STREAM_BITRATE_KBPS
    bandwidth_safety_margin: float = 0.8
    launch_delay_ms: int = 1000
    max_browsers: int | None = None
    buffering_threshold_ms: int = 3000
    health_check_interval_ms: int = 5000
    headless: bool = False
    viewport_width: int = 640
    viewport_height: int = 360
    page_load_timeout_ms: int = 30000
    video_play_timeout_ms: int = 15000

    @property
    def viewport(self) -> tuple[int, int]:
        return (self.viewport_width, self.viewport_height)

    @classmethod
    def load(
        cls,
        settings_path: pathlib.Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "Settings":
        """
        Build settings from the settings file and the environment.

        Environment variables win over the settings file, which wins over
        the built-in defaults.

        Args:
            settings_path: YAML settings file. Skipped if it doesn't exist.
            environ: Environment mapping (defaults to ``os.environ``).

        Returns:
            The resolved settings.
        """
        settings = cls()
        if settings_path is not None and settings_path.exists():
            settings = settings.merge_file(load_settings_file(settings_path))
        return settings.merge_env(os.environ if environ is None else environ)

    def merge_file(self, data: Mapping[str, Any]) -> "Settings":
        """Apply the values stored in a settings file."""
        changes: dict[str, Any] = {}
        if data.get("stream_url"):
            changes["stream_url"] = str(data["stream_url"])
        bitrate = _positive_int(data.get("stream_bitrate_kbps"))
        if bitrate is not None:
            changes["stream_bitrate_kbps"] = bitrate
        return replace(self, **changes)

    def merge_env(self, environ: Mapping[str, str]) -> "Settings":
        """Apply environment overrides (unset or unparseable values are ignored)."""
        changes: dict[str, Any] = {}

        if environ.get("STREAM_URL"):
            changes["stream_url"] = environ["STREAM_URL"]

        int_fields = {
            "STREAM_BITRATE_KBPS": "stream_bitrate_kbps",
            "LAUNCH_DELAY_MS": "launch_delay_ms",
            "BUFFERING_THRESHOLD_MS": "buffering_threshold_ms",
            "HEALTH_CHECK_INTERVAL_MS": "health_check_interval_ms",
            "VIEWPORT_WIDTH": "viewport_width",
            "VIEWPORT_HEIGHT": "viewport_height",
            "PAGE_LOAD_TIMEOUT_MS": "page_load_timeout_ms",
            "VIDEO_PLAY_TIMEOUT_MS": "video_play_timeout_ms",
        }
        for env_name, attr in int_fields.items():
            value = _positive_int(environ.get(env_name))
            if value is not None:
                changes[attr] = value

        margin = _positive_float(environ.get("BANDWIDTH_SAFETY_MARGIN"))
        if margin is not None:
            if margin > 1:
                logger.warning("Ignoring BANDWIDTH_SAFETY_MARGIN=%s (must be <= 1)", margin)
            else:
                changes["bandwidth_safety_margin"] = margin

        max_browsers = _positive_int(environ.get("MAX_BROWSERS"))
        if max_browsers is not None:
            changes["max_browsers"] = max_browsers

        if "HEADLESS" in environ:
            changes["headless"] = environ["HEADLESS"] == "true"

        return replace(self, **changes)

    def require_stream_url(self) -> StreamURL:
        """
        Return the stream URL.

        Raises:
            ConfigurationError: If no stream URL is configured.
        """
        if not self.stream_url:
            msg = "No stream URL configured (set STREAM_URL or use --url)"
            raise ConfigurationError(msg)
        return self.stream_url


def _positive_int(value: object) -> int | None:
    if value is None or value == "":
        return None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number if number > 0 else None


def _positive_float(value: object) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return number if number > 0 else None


def load_settings_file(path: pathlib.Path) -> dict[str, Any]:
    """
    Load the YAML settings file.

    Args:
        path: Path to the settings file.

    Returns:
        The settings mapping.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the document is not a mapping.
    """
    if not path.exists():
        msg = f"Settings file not found at {path}"
        raise FileNotFoundError(msg)

    with path.open() as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = "Settings file must contain a mapping of setting names to values"
        raise ValueError(msg)
    return data


def ensure_settings_file(path: pathlib.Path) -> bool:
    """
    Create the settings file with defaults on first run.

    An existing file is never overwritten.

    Returns:
        True if the file was created, False if it already existed.
    """
    if path.exists():
        return False

    defaults = {
        "stream_url": DEFAULT_STREAM_URL,
        "stream_bitrate_kbps": DEFAULT_STREAM_BITRATE_KBPS,
    }
    with path.open("w") as f:
        yaml.safe_dump(defaults, f, sort_keys=False)
    logger.info("Created %s with default settings", path)
    return True
