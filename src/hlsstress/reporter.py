"""Console output for launch progress, live status and the final summary."""

import sys
from typing import TextIO

from .capacity import BudgetSource, usable_bandwidth_kbps
from .config import Settings
from .types import CapacityEstimate, FleetStats, LaunchProgress


def format_number(number: float) -> str:
    """Format a number with thousands separators."""
    return f"{round(number):,}"


class ConsoleReporter:
    """
    Renders fleet events on a terminal.

    Progress and live status are rewritten in place with a carriage
    return; everything else is printed on its own lines.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    def banner(self, settings: Settings, stream_url: str) -> None:
        self._write("\nHLS Streaming Stress Test\n")
        self._write("=" * 40 + "\n")
        self._write(f"\nStream URL: {stream_url}\n")
        self._write(f"Stream bitrate: {settings.stream_bitrate_kbps} Kbps\n")

    def calculation(
        self,
        settings: Settings,
        estimate: CapacityEstimate,
        budget: int,
        source: BudgetSource,
    ) -> None:
        """Show how the session budget was derived."""
        if source is BudgetSource.MANUAL:
            self._write(f"\nUsing manual limit: {budget} browsers\n")
        elif source is BudgetSource.CONFIG:
            self._write(f"\nUsing config limit: {budget} browsers\n")

        usable = usable_bandwidth_kbps(estimate.download_kbps, settings.bandwidth_safety_margin)
        percent = f"{settings.bandwidth_safety_margin * 100:g}%"
        self._write("\nCalculation:\n")
        self._write(f"   Stream bitrate:    {format_number(settings.stream_bitrate_kbps)} Kbps\n")
        self._write(
            f"   Usable bandwidth:  {format_number(usable)} Kbps "
            f"({percent} of {format_number(estimate.download_kbps)})\n"
        )
        self._write(f"   Max browsers:      {budget}\n")
        self._write(f"   Launch delay:      {settings.launch_delay_ms}ms between each\n")
        self._write(f"   Buffering after:   {settings.buffering_threshold_ms}ms stalled\n")

    def launch_progress(self, progress: LaunchProgress) -> None:
        status = "✓ Playing" if progress.success else f"✗ {progress.error or 'Failed'}"
        if progress.success and progress.error:
            status = f"✓ {progress.error}"
        self._write(
            f"\r   Opening browser {progress.current}/{progress.total}... {status}    "
        )
        if progress.current == progress.total:
            self._write("\n\n")

    def monitoring_started(self, settings: Settings, stats: FleetStats) -> None:
        interval = settings.health_check_interval_ms / 1000
        self._write(f"\nLive Status (updates every {interval:g}s):\n")
        self._write("   Press Ctrl+C to stop and close all browsers\n\n")
        self.status_line(stats)

    def status_line(self, stats: FleetStats) -> None:
        self._write(
            f"\r   Active: {stats.launched} | Healthy: {stats.healthy} | "
            f"Buffering: {stats.buffering} | Errors: {stats.errors}     "
        )

    def summary(self, stats: FleetStats, closed: int, total: int) -> None:
        self._write(f"\n\nClosed {closed}/{total} browsers\n")
        self._write("\nFinal Summary:\n")
        self._write(f"   Total launched:  {stats.launched}\n")
        self._write(f"   Healthy:         {stats.healthy}\n")
        self._write(f"   Buffering:       {stats.buffering}\n")
        self._write(f"   Errors:          {stats.errors}\n\n")
