"""
hlsstress - HLS streaming stress test.

Estimates how many concurrent viewers a link can sustain, opens that many
browser players against a stream page and tracks their playback health.
"""

from .capacity import estimate_budget, resolve_budget
from .config import ConfigurationError, Settings
from .fleet import FleetOrchestrator
from .session import StreamSession
from .speedtest import run_speed_test
from .types import CapacityEstimate, FleetStats, ProbeSnapshot

__version__ = "0.1.0"
__all__ = [
    "CapacityEstimate",
    "ConfigurationError",
    "FleetOrchestrator",
    "FleetStats",
    "ProbeSnapshot",
    "Settings",
    "StreamSession",
    "estimate_budget",
    "resolve_budget",
    "run_speed_test",
]
