"""Staggered launch, health sampling and teardown of a fleet of sessions."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any

from .config import Settings
from .session import StreamSession
from .types import (
    FleetState,
    FleetStats,
    HealthStatus,
    LaunchProgress,
    LaunchResult,
    StreamURL,
)

logger = logging.getLogger(__name__)

type SessionFactory = Callable[[int], StreamSession]
type ProgressCallback = Callable[[LaunchProgress], None]
type StatsCallback = Callable[[FleetStats], None]


class FleetOrchestrator:
    """
    Drives a fleet of browser sessions through one stress-test run.

    Lifecycle: IDLE -> LAUNCHING -> MONITORING -> SHUTTING_DOWN -> STOPPED.
    Blocking browser calls run on a thread pool; everything else runs on
    the event loop. A shutdown request acts as a cancellation token that
    is checked between launches and at the top of every health tick.

    Attributes:
        settings: Run settings (launch delay, poll interval, ...).
        sessions: Sessions that launched successfully and are tracked.
        state: Current lifecycle state.
        closed_count: Sessions closed cleanly during shutdown.
        teardown_total: Sessions that shutdown attempted to close.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: SessionFactory | None = None,
        max_workers: int | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            settings: Run settings.
            session_factory: Builds the session for a 1-based index.
            max_workers: Worker threads for browser calls (default: fleet size).
        """
        self.settings = settings
        self.session_factory = session_factory or (
            lambda index: StreamSession(index, settings)
        )
        self.max_workers = max_workers
        self.sessions: list[StreamSession] = []
        self.state = FleetState.IDLE
        self.closed_count = 0
        self.teardown_total = 0

        self._stats = FleetStats()
        self._executor: ThreadPoolExecutor | None = None
        self._monitor_task: asyncio.Task[None] | None = None
        self._shutdown_requested = False
        self._shutdown_started = False
        self._shutdown_event = asyncio.Event()
        self._launch_idle = asyncio.Event()
        self._launch_idle.set()

    @property
    def stats(self) -> FleetStats:
        """Current fleet statistics (an immutable snapshot)."""
        return self._stats

    def request_shutdown(self) -> None:
        """
        Signal the run to stop.

        Safe to call from a signal handler and idempotent: later calls
        are ignored.
        """
        if self._shutdown_requested:
            logger.debug("Shutdown already requested, ignoring")
            return
        logger.info("Shutdown requested")
        self._shutdown_requested = True
        self._shutdown_event.set()

    def _get_executor(self, size_hint: int = 1) -> ThreadPoolExecutor:
        if self._executor is None:
            workers = self.max_workers or max(1, size_hint)
            self._executor = ThreadPoolExecutor(
                max_workers=workers,
                thread_name_prefix="hlsstress-session",
            )
        return self._executor

    async def _run_blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), func, *args)

    async def _wait_for_shutdown(self, timeout: float) -> bool:
        """Sleep for ``timeout`` seconds; return True early if shutdown is requested."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout)
        except TimeoutError:
            return False
        return True

    def _notify(self, callback: Callable[[Any], None] | None, payload: Any) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            logger.exception("Error in fleet callback")

    async def _launch_one(self, index: int, url: StreamURL) -> tuple[StreamSession | None, LaunchResult]:
        try:
            session = self.session_factory(index)
            result = await self._run_blocking(session.launch, url)
        except Exception as e:
            logger.exception("Unexpected error launching session %d", index)
            return None, LaunchResult(success=False, error=str(e) or type(e).__name__)
        return session, result

    async def launch_sessions(
        self,
        count: int,
        url: StreamURL,
        on_progress: ProgressCallback | None = None,
        delay_seconds: float | None = None,
    ) -> None:
        """
        Launch ``count`` sessions one after another.

        Launches never overlap. Between two launches the orchestrator
        waits the stagger delay; no delay follows the last one. A shutdown
        request stops further launches but leaves launched sessions alone.

        Args:
            count: Number of sessions to launch.
            url: Page hosting the player.
            on_progress: Called after every launch attempt.
            delay_seconds: Stagger delay (default: ``settings.launch_delay_ms``).
        """
        if self._shutdown_requested or self.state is not FleetState.IDLE:
            logger.warning("Not launching sessions in state %s", self.state.value)
            return

        delay = self.settings.launch_delay_ms / 1000 if delay_seconds is None else delay_seconds
        self.state = FleetState.LAUNCHING
        self._get_executor(count)
        self._launch_idle.clear()
        logger.info("Launching %d sessions (%.1fs apart)", count, delay)

        try:
            for index in range(1, count + 1):
                if self._shutdown_requested:
                    logger.info("Skipping %d remaining launches", count - index + 1)
                    break

                session, result = await self._launch_one(index, url)
                if result.success and session is not None:
                    self.sessions.append(session)
                    self._stats = replace(
                        self._stats,
                        launched=self._stats.launched + 1,
                        healthy=self._stats.healthy + (1 if result.playing else 0),
                    )
                else:
                    self._stats = replace(self._stats, errors=self._stats.errors + 1)

                self._notify(
                    on_progress,
                    LaunchProgress(
                        current=index,
                        total=count,
                        success=result.success,
                        error=result.error,
                        stats=self._stats,
                    ),
                )

                if index < count and await self._wait_for_shutdown(delay):
                    logger.info("Launch sequence interrupted after %d/%d", index, count)
                    break
        finally:
            self._launch_idle.set()

    async def poll_health(self) -> FleetStats:
        """
        Sample every tracked session once and recompute the statistics.

        Reads are issued concurrently; the counters are rebuilt from
        scratch once all of them have finished. A session whose read fails
        counts as an error for this tick and stays tracked.

        Returns:
            The new statistics.
        """
        sessions = list(self.sessions)
        results = await asyncio.gather(
            *(self._run_blocking(session.read_health) for session in sessions),
            return_exceptions=True,
        )

        counts = dict.fromkeys(HealthStatus, 0)
        for session, result in zip(sessions, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Health read failed for session %d: %s", session.index, result)
                counts[HealthStatus.ERROR] += 1
                continue
            counts[result.classify()] += 1

        self._stats = FleetStats(
            launched=self._stats.launched,
            healthy=counts[HealthStatus.HEALTHY],
            buffering=counts[HealthStatus.BUFFERING],
            errors=counts[HealthStatus.ERROR],
        )
        logger.debug("Health tick: %s", self._stats)
        return self._stats

    async def _monitor_loop(self, on_update: StatsCallback | None) -> None:
        interval = self.settings.health_check_interval_ms / 1000
        while not await self._wait_for_shutdown(interval):
            await self.poll_health()
            self._notify(on_update, self._stats)

    def start_health_checks(self, on_update: StatsCallback | None = None) -> asyncio.Task[None] | None:
        """
        Start the periodic health sweep.

        Args:
            on_update: Called with the new statistics after every tick.

        Returns:
            The monitoring task, or None if the fleet is shutting down.
        """
        if self._shutdown_requested:
            return None
        if self._monitor_task is not None:
            logger.warning("Health checks already running")
            return self._monitor_task

        self.state = FleetState.MONITORING
        self._monitor_task = asyncio.create_task(self._monitor_loop(on_update))
        logger.info(
            "Started health checks every %.1fs",
            self.settings.health_check_interval_ms / 1000,
        )
        return self._monitor_task

    async def stop_health_checks(self) -> None:
        """Stop the periodic health sweep."""
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Stopped health checks")

    async def shutdown(self) -> int:
        """
        Stop monitoring and close every session.

        Idempotent: a call while a shutdown is running or finished does
        nothing. Individual close failures are tolerated and the sweep
        always covers every session.

        Returns:
            Number of sessions closed cleanly.
        """
        if self._shutdown_started:
            return self.closed_count
        self._shutdown_started = True
        self.request_shutdown()
        self.state = FleetState.SHUTTING_DOWN
        logger.info("Shutting down...")

        await self.stop_health_checks()
        # Any in-flight launch finishes before the sweep so it gets closed too
        await self._launch_idle.wait()

        sessions, self.sessions = self.sessions, []
        self.teardown_total = len(sessions)
        for session in sessions:
            try:
                await self._run_blocking(session.close)
                self.closed_count += 1
            except Exception as e:
                logger.debug("Failed to close session %d: %s", session.index, e)

        logger.info("Closed %d/%d browsers", self.closed_count, self.teardown_total)

        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self.state = FleetState.STOPPED
        return self.closed_count

    async def run(
        self,
        count: int,
        url: StreamURL,
        on_progress: ProgressCallback | None = None,
        on_update: StatsCallback | None = None,
        on_monitoring: Callable[[FleetStats], None] | None = None,
    ) -> FleetStats:
        """
        Run a full test: launch, monitor until shutdown is requested, tear down.

        Args:
            count: Number of sessions to launch.
            url: Page hosting the player.
            on_progress: Called after every launch attempt.
            on_update: Called after every health tick.
            on_monitoring: Called once when monitoring starts.

        Returns:
            Final statistics.
        """
        try:
            await self.launch_sessions(count, url, on_progress)
            if self.start_health_checks(on_update) is not None:
                self._notify(on_monitoring, self._stats)
                await self._shutdown_event.wait()
        finally:
            await self.shutdown()
        return self._stats
