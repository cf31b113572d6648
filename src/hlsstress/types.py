"""Type definitions for hlsstress."""

import enum
from dataclasses import dataclass, field
from typing import Any

# Common type aliases (Python 3.12+ syntax)
type URL = str
type StreamURL = str

# Probe error messages
NO_VIDEO_ELEMENT = "No video element found"
MONITOR_NOT_INITIALIZED = "Monitor not initialized"
VIDEO_NOT_PLAYING_YET = "Video not playing yet"


@dataclass(frozen=True)
class CapacityEstimate:
    """Result of a bandwidth measurement.

    Attributes:
        download_kbps: Measured (or manually entered) download rate.
        upload_kbps: Upload rate, estimated as half the download rate.
        ping_ms: Round-trip latency of a tiny request.
    """

    download_kbps: float
    upload_kbps: float
    ping_ms: float

    def __post_init__(self) -> None:
        if self.download_kbps <= 0:
            msg = f"download_kbps must be positive, got {self.download_kbps}"
            raise ValueError(msg)


class HealthStatus(enum.Enum):
    """Classification of a session at a sampling tick."""

    HEALTHY = "healthy"
    BUFFERING = "buffering"
    ERROR = "error"


@dataclass(frozen=True)
class ProbeSnapshot:
    """Playback state read from the in-page probe.

    Attributes:
        is_playing: Not paused, not ended and enough data buffered.
        current_time: Playback position at the latest one-second sample.
        last_time: Playback position at the sample before that.
        stalled_count: Number of ``stalled`` events seen.
        buffering_count: Number of ``waiting`` events seen.
        errors: Error messages reported by the video element.
        ready_state: HTMLMediaElement.readyState at the latest sample.
        start_time_ms: Epoch milliseconds when the probe was installed.
    """

    is_playing: bool = False
    current_time: float = 0.0
    last_time: float = 0.0
    stalled_count: int = 0
    buffering_count: int = 0
    errors: tuple[str, ...] = ()
    ready_state: int = 0
    start_time_ms: float | None = None

    @classmethod
    def from_probe(cls, raw: dict[str, Any]) -> "ProbeSnapshot":
        """Build a snapshot from the object returned by the page script."""
        return cls(
            is_playing=bool(raw.get("isPlaying", False)),
            current_time=float(raw.get("currentTime") or 0.0),
            last_time=float(raw.get("lastTime") or 0.0),
            stalled_count=int(raw.get("stalledCount") or 0),
            buffering_count=int(raw.get("bufferingCount") or 0),
            errors=tuple(str(e) for e in raw.get("errors") or ()),
            ready_state=int(raw.get("readyState") or 0),
            start_time_ms=raw.get("startTime"),
        )

    @classmethod
    def unreadable(cls, reason: str) -> "ProbeSnapshot":
        """Snapshot reported when the probe cannot be read."""
        return cls(errors=(reason,))

    @property
    def time_advancing(self) -> bool:
        return self.current_time > self.last_time

    @property
    def healthy(self) -> bool:
        """Playing, playback time strictly advanced and no errors."""
        return self.is_playing and self.time_advancing and not self.errors

    def classify(self) -> HealthStatus:
        """Map the snapshot onto healthy / error / buffering."""
        if self.healthy:
            return HealthStatus.HEALTHY
        if self.errors:
            return HealthStatus.ERROR
        return HealthStatus.BUFFERING


@dataclass(frozen=True)
class FleetStats:
    """Fleet-wide counters.

    Instances are immutable; the orchestrator replaces the whole object
    on every update so readers never see a mix of old and new counts.
    """

    launched: int = 0
    healthy: int = 0
    buffering: int = 0
    errors: int = 0


@dataclass(frozen=True)
class LaunchResult:
    """Outcome of launching one session.

    ``success`` means the session is alive and instrumented; ``playing``
    tells whether playback was confirmed before the video-start timeout.
    """

    success: bool
    error: str | None = None
    playing: bool = False


@dataclass(frozen=True)
class LaunchProgress:
    """Progress event emitted after each launch attempt."""

    current: int
    total: int
    success: bool
    error: str | None
    stats: FleetStats = field(default_factory=FleetStats)


class FleetState(enum.Enum):
    """Lifecycle of a fleet run."""

    IDLE = "idle"
    LAUNCHING = "launching"
    MONITORING = "monitoring"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
