"""Tests for the CLI module."""

import asyncio
import io
import os
import pathlib
import signal
import time
from unittest.mock import AsyncMock, Mock, patch

import pytest
import yaml

from hlsstress.cli import build_parser, confirm_with_custom, main, run_fleet
from hlsstress.config import Settings
from hlsstress.fleet import FleetOrchestrator
from hlsstress.reporter import ConsoleReporter
from hlsstress.types import CapacityEstimate, LaunchResult, ProbeSnapshot

ESTIMATE = CapacityEstimate(download_kbps=100000, upload_kbps=50000, ping_ms=12)


@pytest.fixture
def workdir(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> pathlib.Path:
    """Run in an empty directory with no stream settings in the environment."""
    monkeypatch.chdir(tmp_path)
    for name in ("STREAM_URL", "MAX_BROWSERS", "HEADLESS", "STREAM_BITRATE_KBPS"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def test_parser_flags() -> None:
    """Test parsing of all supported flags."""
    args = build_parser().parse_args(
        ["--url=https://example.com/s.html", "--max=7", "--headless", "-y"]
    )
    assert args.url == "https://example.com/s.html"
    assert args.max == 7
    assert args.headless is True
    assert args.yes is True


def test_parser_rejects_non_positive_max() -> None:
    """Test that --max must be a positive integer and a bad value exits 1."""
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(["--max=0"])
    assert exc.value.code == 1


def test_usage_error_exits_one(capsys: pytest.CaptureFixture[str]) -> None:
    """Test that invalid flags from main exit 1 with a usage message."""
    with pytest.raises(SystemExit) as exc:
        main(["--max=abc"])
    assert exc.value.code == 1
    assert "invalid integer" in capsys.readouterr().err

    with pytest.raises(SystemExit) as exc:
        main(["--unknown"])
    assert exc.value.code == 1


def test_help_exits_zero() -> None:
    """Test that --help exits successfully."""
    with pytest.raises(SystemExit) as exc:
        main(["--help"])
    assert exc.value.code == 0


class TestConfirmWithCustom:
    """Test the launch confirmation prompt."""

    def test_yes(self):
        assert confirm_with_custom(5, input_fn=Mock(return_value="y")) == 5
        assert confirm_with_custom(5, input_fn=Mock(return_value="YES")) == 5

    def test_no_or_empty(self):
        assert confirm_with_custom(5, input_fn=Mock(return_value="n")) is None
        assert confirm_with_custom(5, input_fn=Mock(return_value="")) is None

    def test_custom_number(self):
        assert confirm_with_custom(5, input_fn=Mock(return_value="12")) == 12

    def test_invalid_input_cancels(self):
        assert confirm_with_custom(5, input_fn=Mock(return_value="-3")) is None
        assert confirm_with_custom(5, input_fn=Mock(return_value="lots")) is None

    def test_eof_cancels(self):
        assert confirm_with_custom(5, input_fn=Mock(side_effect=EOFError)) is None


def test_missing_stream_url_exits_one(workdir: pathlib.Path) -> None:
    """Test that no resolvable stream URL is fatal before any work starts."""
    settings_path = workdir / "settings.yaml"
    settings_path.write_text(yaml.safe_dump({"stream_url": "", "stream_bitrate_kbps": 2800}))

    with patch("hlsstress.cli.run_speed_test") as mock_speed:
        assert main(["--config", str(settings_path)]) == 1
        mock_speed.assert_not_called()


def test_first_run_creates_settings_file(workdir: pathlib.Path) -> None:
    """Test that the settings file is created with defaults on first run."""
    with (
        patch("hlsstress.cli.run_speed_test", return_value=ESTIMATE),
        patch("hlsstress.cli.confirm_with_custom", return_value=None),
    ):
        assert main([]) == 0

    assert (workdir / "settings.yaml").exists()


def test_user_cancel_exits_zero(workdir: pathlib.Path) -> None:
    """Test that declining the prompt exits cleanly without launching."""
    with (
        patch("hlsstress.cli.run_speed_test", return_value=ESTIMATE),
        patch("builtins.input", return_value="n"),
        patch("hlsstress.cli.run_fleet", new_callable=AsyncMock) as mock_run,
    ):
        assert main(["--url=https://example.com/s.html"]) == 0
        mock_run.assert_not_called()


def test_yes_launches_estimated_budget(workdir: pathlib.Path) -> None:
    """Test that --yes launches the bandwidth-derived budget."""
    with (
        patch("hlsstress.cli.run_speed_test", return_value=ESTIMATE),
        patch("hlsstress.cli.run_fleet", new_callable=AsyncMock, return_value=0) as mock_run,
    ):
        assert main(["--url=https://example.com/s.html", "--headless", "-y"]) == 0

    settings, url, budget, _ = mock_run.call_args.args
    assert url == "https://example.com/s.html"
    assert budget == 28
    assert settings.headless is True


def test_max_flag_overrides_estimate(workdir: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that --max beats both MAX_BROWSERS and the estimate."""
    monkeypatch.setenv("MAX_BROWSERS", "9")
    with (
        patch("hlsstress.cli.run_speed_test", return_value=ESTIMATE),
        patch("hlsstress.cli.run_fleet", new_callable=AsyncMock, return_value=0) as mock_run,
    ):
        assert main(["--url=https://example.com/s.html", "--max=3", "-y"]) == 0

    assert mock_run.call_args.args[2] == 3


def test_custom_count_from_prompt(workdir: pathlib.Path) -> None:
    """Test that a number typed at the prompt replaces the budget."""
    with (
        patch("hlsstress.cli.run_speed_test", return_value=ESTIMATE),
        patch("builtins.input", return_value="4"),
        patch("hlsstress.cli.run_fleet", new_callable=AsyncMock, return_value=0) as mock_run,
    ):
        assert main(["--url=https://example.com/s.html"]) == 0

    assert mock_run.call_args.args[2] == 4


def test_fatal_error_exits_one(workdir: pathlib.Path) -> None:
    """Test that an unexpected top-level error exits non-zero."""
    with (
        patch("hlsstress.cli.run_speed_test", return_value=ESTIMATE),
        patch("hlsstress.cli.run_fleet", new_callable=AsyncMock, side_effect=RuntimeError("boom")),
    ):
        assert main(["--url=https://example.com/s.html", "-y"]) == 1


class SlowClosingSession:
    """Session stand-in that launches instantly and closes slowly."""

    def __init__(self, index: int) -> None:
        self.index = index
        self.closed = 0

    def launch(self, url: str) -> LaunchResult:
        return LaunchResult(success=True, playing=True)

    def read_health(self) -> ProbeSnapshot:
        return ProbeSnapshot(is_playing=True, current_time=2.0, last_time=1.0)

    def close(self) -> None:
        time.sleep(0.05)
        self.closed += 1


@pytest.mark.asyncio
async def test_run_fleet_stops_once_on_repeated_sigint() -> None:
    """Test that Ctrl+C tears the fleet down once and a second one is ignored."""
    sessions: list[SlowClosingSession] = []
    fleets: list[FleetOrchestrator] = []

    def make_session(index: int) -> SlowClosingSession:
        session = SlowClosingSession(index)
        sessions.append(session)
        return session

    def make_fleet(settings: Settings) -> FleetOrchestrator:
        fleet = FleetOrchestrator(settings, session_factory=make_session)
        fleets.append(fleet)
        return fleet

    async def interrupt_twice() -> None:
        await asyncio.sleep(0.1)
        os.kill(os.getpid(), signal.SIGINT)
        # the second signal lands while the sessions are still closing
        await asyncio.sleep(0.01)
        os.kill(os.getpid(), signal.SIGINT)

    out = io.StringIO()
    settings = Settings(launch_delay_ms=1, health_check_interval_ms=10)
    with patch("hlsstress.cli.FleetOrchestrator", side_effect=make_fleet):
        interrupter = asyncio.create_task(interrupt_twice())
        rc = await run_fleet(settings, "https://example.com/s.html", 3, ConsoleReporter(out))
        await interrupter

    text = out.getvalue()
    assert rc == 0
    assert text.count("Final Summary") == 1
    assert "Closed 3/3 browsers" in text
    assert len(sessions) == 3
    assert all(s.closed == 1 for s in sessions)
    assert fleets[0].closed_count == 3
    assert signal.getsignal(signal.SIGINT) is signal.default_int_handler
    assert signal.getsignal(signal.SIGTERM) == signal.SIG_DFL
