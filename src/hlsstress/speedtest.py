"""Download bandwidth measurement with a manual-entry fallback."""

import logging
import time
from collections.abc import Callable

import requests

from .types import CapacityEstimate, URL

logger = logging.getLogger(__name__)

HTTP_OK = 200
PING_URL = "https://speed.cloudflare.com/__down?bytes=1000"
DOWNLOAD_URL = "https://speed.cloudflare.com/__down?bytes=10000000"
REQUEST_TIMEOUT_SECONDS = 30.0
CHUNK_SIZE = 64 * 1024

# Used when the manual entry can't be parsed
FALLBACK_ESTIMATE = CapacityEstimate(download_kbps=50000, upload_kbps=25000, ping_ms=20)
MANUAL_PING_MS = 20


class SpeedTestError(RuntimeError):
    """Raised when a bandwidth download fails."""


def download_test(
    url: URL,
    session: requests.Session | None = None,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
) -> tuple[float, float, int]:
    """
    Download a test file and measure throughput.

    Args:
        url: URL of the test payload.
        session: Optional requests session to reuse (default: a one-off request).
        timeout: Connect/read timeout in seconds.

    Returns:
        Tuple of (bytes_per_second, duration_ms, downloaded_bytes).

    Raises:
        SpeedTestError: On HTTP errors, timeouts or an empty download.
    """
    get = session.get if session is not None else requests.get
    start_time = time.monotonic()
    downloaded = 0

    try:
        with get(url, stream=True, timeout=timeout) as response:
            if response.status_code != HTTP_OK:
                msg = f"HTTP {response.status_code}"
                raise SpeedTestError(msg)
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                downloaded += len(chunk)
    except requests.RequestException as e:
        raise SpeedTestError(str(e)) from e

    duration_ms = (time.monotonic() - start_time) * 1000
    if downloaded == 0 or duration_ms <= 0:
        msg = "Empty download"
        raise SpeedTestError(msg)

    return (downloaded / duration_ms * 1000, duration_ms, downloaded)


def measure_bandwidth(session: requests.Session | None = None) -> CapacityEstimate:
    """
    Measure download bandwidth against the Cloudflare speed endpoint.

    Upload is not measured; it is estimated as half the download rate.
    Without a caller-supplied session, one is opened for the two requests
    and closed afterwards.

    Raises:
        SpeedTestError: If either request fails.
    """
    if session is None:
        with requests.Session() as http:
            return measure_bandwidth(http)

    ping_start = time.monotonic()
    download_test(PING_URL, session=session)
    ping_ms = round((time.monotonic() - ping_start) * 1000)

    bytes_per_second, duration_ms, downloaded = download_test(DOWNLOAD_URL, session=session)
    logger.debug("Downloaded %d bytes in %.0f ms", downloaded, duration_ms)

    # bytes/s * 8 bits/byte / 1000
    download_kbps = round(bytes_per_second * 8 / 1000)
    if download_kbps <= 0:
        msg = "Measured download rate rounds to zero"
        raise SpeedTestError(msg)

    return CapacityEstimate(
        download_kbps=download_kbps,
        upload_kbps=round(download_kbps * 0.5),
        ping_ms=ping_ms,
    )


def parse_manual_speed(answer: str) -> CapacityEstimate:
    """
    Turn a manually entered Mbps figure into an estimate.

    Non-numeric or non-positive input yields ``FALLBACK_ESTIMATE``.
    """
    try:
        mbps = float(answer.strip())
    except ValueError:
        mbps = 0.0

    if not mbps > 0 or mbps == float("inf"):
        logger.warning("Invalid speed %r, using default 50 Mbps", answer)
        return FALLBACK_ESTIMATE

    download_kbps = round(mbps * 1000)
    if download_kbps <= 0:
        logger.warning("Speed %r is too small, using default 50 Mbps", answer)
        return FALLBACK_ESTIMATE

    logger.info("Using %s Mbps (%d Kbps)", mbps, download_kbps)
    return CapacityEstimate(
        download_kbps=download_kbps,
        upload_kbps=download_kbps / 2,
        ping_ms=MANUAL_PING_MS,
    )


def prompt_manual_speed(input_fn: Callable[[str], str] | None = None) -> CapacityEstimate:
    """Ask the user for their download speed in Mbps."""
    print("\n   Please enter your download speed manually:")
    try:
        answer = (input_fn or input)("   Download speed in Mbps: ")
    except EOFError:
        answer = ""
    return parse_manual_speed(answer)


def run_speed_test(
    session: requests.Session | None = None,
    input_fn: Callable[[str], str] | None = None,
) -> CapacityEstimate:
    """
    Measure bandwidth, falling back to manual entry on any failure.

    Never raises for measurement problems.
    """
    logger.info("Running speed test (downloading test file from Cloudflare CDN)...")
    try:
        estimate = measure_bandwidth(session)
    except SpeedTestError as e:
        logger.warning("Speed test failed: %s", e)
        return prompt_manual_speed(input_fn)

    logger.info(
        "Speed test complete: download %s, upload %s (estimated), ping %d ms",
        format_speed(estimate.download_kbps),
        format_speed(estimate.upload_kbps),
        estimate.ping_ms,
    )
    return estimate


def format_speed(kbps: float) -> str:
    """Format a rate for humans, e.g. ``"12.5 Mbps"`` or ``"800 Kbps"``."""
    if kbps >= 1000:
        return f"{kbps / 1000:.1f} Mbps"
    return f"{kbps:g} Kbps"
