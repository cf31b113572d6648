"""In-page playback probe.

The probe is a small script installed into each browser page. Two
producers write into ``window._streamHealth``: event listeners on the
``<video>`` element and a one-second sampler. The sampler's ``isPlaying``
recomputation is authoritative because autoplay quirks can desynchronise
the events from the element's real state. The controller side only ever
reads the record.
"""

import logging

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support.ui import WebDriverWait

from .types import MONITOR_NOT_INITIALIZED, NO_VIDEO_ELEMENT, ProbeSnapshot

logger = logging.getLogger(__name__)

INSTALL_SCRIPT = f"""
window._streamHealth = {{
  isPlaying: false,
  currentTime: 0,
  lastTime: 0,
  stalledCount: 0,
  bufferingCount: 0,
  errors: [],
  readyState: 0,
  startTime: Date.now(),
}};
const health = window._streamHealth;
const video = document.querySelector('video');
if (!video) {{
  health.errors.push('{NO_VIDEO_ELEMENT}');
  return;
}}
video.addEventListener('playing', () => {{ health.isPlaying = true; }});
video.addEventListener('pause', () => {{ health.isPlaying = false; }});
video.addEventListener('waiting', () => {{ health.bufferingCount++; }});
video.addEventListener('stalled', () => {{ health.stalledCount++; }});
video.addEventListener('error', () => {{
  const err = video.error;
  health.errors.push((err && err.message) || 'Unknown error');
}});
setInterval(() => {{
  health.lastTime = health.currentTime;
  health.currentTime = video.currentTime;
  health.readyState = video.readyState;
  health.isPlaying = !video.paused && !video.ended && video.readyState > 2;
}}, 1000);
"""

PLAY_SCRIPT = """
const video = document.querySelector('video');
if (video) {
  video.muted = true;
  const started = video.play();
  if (started && started.catch) { started.catch(() => {}); }
}
"""

PLAYBACK_READY_SCRIPT = """
const video = document.querySelector('video');
return Boolean(video && !video.paused && video.readyState >= 3);
"""

READ_SCRIPT = "return window._streamHealth || null;"


def install_probe(driver: WebDriver) -> None:
    """Install the probe into the current page."""
    driver.execute_script(INSTALL_SCRIPT)


def attempt_play(driver: WebDriver) -> None:
    """
    Start muted playback.

    A rejected ``play()`` promise is ignored; the session is simply not
    playing yet.
    """
    driver.execute_script(PLAY_SCRIPT)


def wait_for_playback(driver: WebDriver, timeout: float, poll_frequency: float = 0.5) -> bool:
    """
    Wait for the video to be playing with enough data buffered.

    Args:
        driver: Browser session.
        timeout: Seconds to wait.
        poll_frequency: Seconds between checks.

    Returns:
        True if playback started within the timeout, False otherwise.
    """
    try:
        WebDriverWait(driver, timeout, poll_frequency=poll_frequency).until(
            lambda d: d.execute_script(PLAYBACK_READY_SCRIPT)
        )
    except TimeoutException:
        return False
    except WebDriverException as e:
        logger.debug("Playback wait failed: %s", e)
        return False
    return True


def read_probe(driver: WebDriver | None) -> ProbeSnapshot:
    """
    Read the probe state from a page.

    Never raises: an uninstalled probe or a dead page yields an unhealthy
    snapshot carrying the reason in ``errors``.
    """
    if driver is None:
        return ProbeSnapshot.unreadable(MONITOR_NOT_INITIALIZED)

    try:
        raw = driver.execute_script(READ_SCRIPT)
    except WebDriverException as e:
        return ProbeSnapshot.unreadable(e.msg or type(e).__name__)

    if not isinstance(raw, dict):
        return ProbeSnapshot.unreadable(MONITOR_NOT_INITIALIZED)
    return ProbeSnapshot.from_probe(raw)
