"""Convert a bandwidth figure into a session budget."""

import enum
import logging
import math

logger = logging.getLogger(__name__)


class BudgetSource(enum.Enum):
    """Where the session budget came from."""

    MANUAL = "manual"
    CONFIG = "config"
    ESTIMATED = "estimated"


def usable_bandwidth_kbps(download_kbps: float, safety_margin: float) -> float:
    """Portion of the measured bandwidth treated as usable."""
    return download_kbps * safety_margin


def estimate_budget(
    download_kbps: float,
    stream_bitrate_kbps: float,
    safety_margin: float = 0.8,
) -> int:
    """
    Calculate how many concurrent sessions the link can sustain.

    The result never drops below 1: on a link slower than a single stream
    one session is still launched, knowingly oversubscribing capacity.

    Args:
        download_kbps: Download rate in Kbps (must be positive).
        stream_bitrate_kbps: Bitrate of one stream in Kbps (must be positive).
        safety_margin: Fraction of bandwidth considered usable, in (0, 1].

    Returns:
        Number of sessions to launch (>= 1).

    Raises:
        ValueError: If any argument is out of range.
    """
    if download_kbps <= 0:
        msg = f"download_kbps must be positive, got {download_kbps}"
        raise ValueError(msg)
    if stream_bitrate_kbps <= 0:
        msg = f"stream_bitrate_kbps must be positive, got {stream_bitrate_kbps}"
        raise ValueError(msg)
    if not 0 < safety_margin <= 1:
        msg = f"safety_margin must be in (0, 1], got {safety_margin}"
        raise ValueError(msg)

    usable = usable_bandwidth_kbps(download_kbps, safety_margin)
    budget = math.floor(usable / stream_bitrate_kbps)
    if budget < 1:
        logger.warning(
            "Usable bandwidth %.0f Kbps is below one stream (%s Kbps); launching 1 session anyway",
            usable,
            stream_bitrate_kbps,
        )
    return max(1, budget)


def resolve_budget(
    download_kbps: float,
    stream_bitrate_kbps: float,
    safety_margin: float,
    manual_max: int | None = None,
    config_max: int | None = None,
) -> tuple[int, BudgetSource]:
    """
    Pick the session budget, honouring overrides.

    A CLI override wins over a configured limit, which wins over the
    bandwidth estimate. Overrides are used unconditionally.

    Returns:
        Tuple of (budget, source).
    """
    if manual_max is not None:
        return manual_max, BudgetSource.MANUAL
    if config_max is not None:
        return config_max, BudgetSource.CONFIG
    return (
        estimate_budget(download_kbps, stream_bitrate_kbps, safety_margin),
        BudgetSource.ESTIMATED,
    )
