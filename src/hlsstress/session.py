"""Lifecycle of a single browser-driven viewer."""

import logging
from collections.abc import Callable

from selenium import webdriver
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.remote.webdriver import WebDriver
from webdriver_manager.chrome import ChromeDriverManager

from . import probe
from .config import Settings
from .types import VIDEO_NOT_PLAYING_YET, LaunchResult, ProbeSnapshot, StreamURL

logger = logging.getLogger(__name__)

type DriverFactory = Callable[[Settings], WebDriver]


def build_chrome_options(settings: Settings) -> webdriver.ChromeOptions:
    """
    Chrome options for an isolated viewer.

    Cross-origin checks and the autoplay gesture requirement are relaxed
    so an embedded player can start without manual interaction.
    """
    options = webdriver.ChromeOptions()
    if settings.headless:
        options.add_argument("--headless=new")
    width, height = settings.viewport
    options.add_argument(f"--window-size={width},{height}")
    options.add_argument("--autoplay-policy=no-user-gesture-required")
    options.add_argument("--disable-web-security")
    options.add_argument("--disable-features=IsolateOrigins,site-per-process")
    options.add_argument("--ignore-certificate-errors")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    # Return from get() at DOMContentLoaded
    options.page_load_strategy = "eager"
    return options


def init_chrome_driver(settings: Settings) -> WebDriver:
    """Launch a Chrome WebDriver for one session."""
    service = Service(ChromeDriverManager().install())
    return webdriver.Chrome(service=service, options=build_chrome_options(settings))


class StreamSession:
    """
    One browser session watching the stream.

    All methods block; the fleet orchestrator runs them in a worker pool.

    Attributes:
        index: 1-based position in the launch sequence.
        settings: Run settings (viewport, timeouts, headless).
        driver: The WebDriver, or None before launch / after close.
        last_health: Most recent probe snapshot, if sampled.
    """

    def __init__(
        self,
        index: int,
        settings: Settings,
        driver_factory: DriverFactory = init_chrome_driver,
    ) -> None:
        self.index = index
        self.settings = settings
        self.driver_factory = driver_factory
        self.driver: WebDriver | None = None
        self.last_health: ProbeSnapshot | None = None

    def launch(self, url: StreamURL) -> LaunchResult:
        """
        Open the browser, load the page, install the probe and start playback.

        Only failures up to and including probe installation make the
        launch unsuccessful. A session that is instrumented but not yet
        playing after the video-start timeout still counts as launched.

        Args:
            url: Page hosting the player.

        Returns:
            LaunchResult describing the outcome.
        """
        try:
            self.driver = self.driver_factory(self.settings)
            self.driver.set_page_load_timeout(self.settings.page_load_timeout_ms / 1000)
            self.driver.get(url)
            probe.install_probe(self.driver)
        except Exception as e:
            logger.warning("Session %d failed to launch: %s", self.index, e)
            try:
                self.close()
            except Exception as close_error:
                logger.debug("Session %d cleanup failed: %s", self.index, close_error)
            return LaunchResult(success=False, error=_error_message(e))

        try:
            probe.attempt_play(self.driver)
            playing = probe.wait_for_playback(
                self.driver,
                self.settings.video_play_timeout_ms / 1000,
            )
        except Exception as e:
            logger.debug("Session %d playback start failed: %s", self.index, e)
            playing = False

        if not playing:
            logger.info("Session %d launched, video not playing yet", self.index)
            return LaunchResult(success=True, error=VIDEO_NOT_PLAYING_YET)

        logger.info("Session %d launched and playing", self.index)
        return LaunchResult(success=True, playing=True)

    def read_health(self) -> ProbeSnapshot:
        """Read and remember the latest probe snapshot."""
        snapshot = probe.read_probe(self.driver)
        self.last_health = snapshot
        return snapshot

    def close(self) -> None:
        """
        Quit the browser.

        Raises whatever the driver raises; callers sweeping many sessions
        are expected to tolerate it.
        """
        if self.driver is None:
            return
        driver, self.driver = self.driver, None
        driver.quit()


def _error_message(error: Exception) -> str:
    # Selenium exceptions keep the bare message in .msg
    message = getattr(error, "msg", None) or str(error)
    return message.strip() or type(error).__name__
