"""Tests for the single-session controller."""

from unittest.mock import MagicMock, Mock, patch

import pytest
from selenium.common.exceptions import TimeoutException, WebDriverException

from hlsstress.config import Settings
from hlsstress.session import StreamSession, build_chrome_options
from hlsstress.types import MONITOR_NOT_INITIALIZED, VIDEO_NOT_PLAYING_YET

STREAM_URL = "https://example.com/stream.html"


def _session(driver: MagicMock, **settings: object) -> StreamSession:
    return StreamSession(1, Settings(**settings), driver_factory=Mock(return_value=driver))


def test_session_initialization() -> None:
    """Test that a session starts without a browser."""
    session = StreamSession(3, Settings())

    assert session.index == 3
    assert session.driver is None
    assert session.last_health is None


def test_chrome_options_headless_and_viewport() -> None:
    """Test browser flags for a headless session."""
    options = build_chrome_options(Settings(headless=True, viewport_width=800, viewport_height=450))

    assert "--headless=new" in options.arguments
    assert "--window-size=800,450" in options.arguments
    assert "--autoplay-policy=no-user-gesture-required" in options.arguments
    assert "--disable-web-security" in options.arguments
    assert options.page_load_strategy == "eager"


def test_chrome_options_headed() -> None:
    """Test that headed mode omits the headless flag."""
    options = build_chrome_options(Settings(headless=False))
    assert not any(arg.startswith("--headless") for arg in options.arguments)


def test_launch_playing() -> None:
    """Test a launch that confirms playback."""
    driver = MagicMock()
    session = _session(driver, page_load_timeout_ms=20000)

    with patch("hlsstress.session.probe.wait_for_playback", return_value=True):
        result = session.launch(STREAM_URL)

    assert result.success is True
    assert result.playing is True
    assert result.error is None
    driver.set_page_load_timeout.assert_called_once_with(20.0)
    driver.get.assert_called_once_with(STREAM_URL)


def test_launch_not_playing_yet_is_still_success() -> None:
    """Test that an instrumented but silent session counts as launched."""
    driver = MagicMock()
    session = _session(driver)

    with patch("hlsstress.session.probe.wait_for_playback", return_value=False):
        result = session.launch(STREAM_URL)

    assert result.success is True
    assert result.playing is False
    assert result.error == VIDEO_NOT_PLAYING_YET
    assert session.driver is driver


def test_launch_play_failure_is_not_fatal() -> None:
    """Test that errors after probe installation don't fail the launch."""
    driver = MagicMock()
    session = _session(driver)

    with patch("hlsstress.session.probe.attempt_play", side_effect=WebDriverException("play rejected")):
        result = session.launch(STREAM_URL)

    assert result.success is True
    assert result.error == VIDEO_NOT_PLAYING_YET


def test_launch_navigation_failure() -> None:
    """Test that a navigation error fails the launch and closes the browser."""
    driver = MagicMock()
    driver.get.side_effect = TimeoutException("Timed out receiving message from renderer")
    session = _session(driver)

    result = session.launch(STREAM_URL)

    assert result.success is False
    assert result.error == "Timed out receiving message from renderer"
    driver.quit.assert_called_once()
    assert session.driver is None


def test_launch_browser_start_failure() -> None:
    """Test that a browser that can't start fails the launch."""
    session = StreamSession(
        1,
        Settings(),
        driver_factory=Mock(side_effect=RuntimeError("chrome binary not found")),
    )

    result = session.launch(STREAM_URL)

    assert result.success is False
    assert result.error == "chrome binary not found"


def test_launch_failure_cleanup_error_is_tolerated() -> None:
    """Test that a failing quit during cleanup doesn't mask the launch error."""
    driver = MagicMock()
    driver.get.side_effect = WebDriverException("net::ERR_NAME_NOT_RESOLVED")
    driver.quit.side_effect = WebDriverException("already gone")
    session = _session(driver)

    result = session.launch(STREAM_URL)

    assert result.success is False
    assert result.error == "net::ERR_NAME_NOT_RESOLVED"


def test_read_health_before_launch() -> None:
    """Test reading health without a browser."""
    session = StreamSession(1, Settings())
    snapshot = session.read_health()

    assert snapshot.errors == (MONITOR_NOT_INITIALIZED,)
    assert session.last_health is snapshot


def test_read_health_keeps_latest() -> None:
    """Test that each read replaces the previous snapshot."""
    driver = MagicMock()
    driver.execute_script.side_effect = [
        {"isPlaying": True, "currentTime": 2.0, "lastTime": 1.0, "errors": []},
        {"isPlaying": True, "currentTime": 2.0, "lastTime": 2.0, "errors": []},
    ]
    session = _session(driver)
    session.driver = driver

    assert session.read_health().healthy
    assert not session.read_health().healthy
    assert session.last_health is not None
    assert session.last_health.current_time == 2.0


def test_close_is_idempotent() -> None:
    """Test that closing twice quits once."""
    driver = MagicMock()
    session = _session(driver)
    session.driver = driver

    session.close()
    session.close()

    driver.quit.assert_called_once()


def test_close_propagates_errors() -> None:
    """Test that close surfaces driver errors to the caller."""
    driver = MagicMock()
    driver.quit.side_effect = WebDriverException("crashed")
    session = _session(driver)
    session.driver = driver

    with pytest.raises(WebDriverException):
        session.close()
    assert session.driver is None
