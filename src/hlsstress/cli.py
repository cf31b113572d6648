"""Command-line interface for hlsstress."""

import argparse
import asyncio
import functools
import logging
import pathlib
import signal
import sys
from collections.abc import Callable
from dataclasses import replace
from typing import NoReturn

import yaml

from .capacity import resolve_budget
from .config import DEFAULT_SETTINGS_FILE, ConfigurationError, Settings, ensure_settings_file
from .fleet import FleetOrchestrator
from .reporter import ConsoleReporter
from .speedtest import run_speed_test
from .types import StreamURL

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        debug: Enable debug level logging if True.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler("hlsstress.log"),
            logging.StreamHandler(),
        ],
    )


def positive_int(value: str) -> int:
    """argparse type for a strictly positive integer."""
    try:
        number = int(value)
    except ValueError:
        msg = f"invalid integer: {value!r}"
        raise argparse.ArgumentTypeError(msg) from None
    if number <= 0:
        msg = f"must be greater than 0: {value!r}"
        raise argparse.ArgumentTypeError(msg)
    return number


class CliArgumentParser(argparse.ArgumentParser):
    """ArgumentParser whose usage errors exit with EXIT_FAILURE instead of 2."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = CliArgumentParser(
        prog="hlsstress",
        description="HLS streaming stress test - open as many browser players as your bandwidth allows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Size the fleet from a speed test and confirm interactively
  hlsstress --url=https://example.com/stream.html

  # Launch exactly 10 headless browsers without asking
  hlsstress --url=https://example.com/stream.html --max=10 --headless -y

Environment variables:
  STREAM_URL              Stream page URL
  STREAM_BITRATE_KBPS     Stream bitrate (default: 2800)
  MAX_BROWSERS            Maximum browsers
  HEADLESS                Set to 'true' for headless mode
        """,
    )
    parser.add_argument("--url", type=str, help="Stream page URL (overrides config)")
    parser.add_argument(
        "--max",
        type=positive_int,
        help="Maximum browsers (overrides auto-calculation)",
    )
    parser.add_argument("--headless", action="store_true", help="Run in headless mode")
    parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--config",
        "-c",
        type=pathlib.Path,
        help=f"Path to the settings file (default: ./{DEFAULT_SETTINGS_FILE})",
    )
    return parser


def confirm_with_custom(
    suggested: int,
    input_fn: Callable[[str], str] | None = None,
) -> int | None:
    """
    Ask whether to proceed with the suggested number of browsers.

    Args:
        suggested: The calculated browser count.
        input_fn: Source of the user's answer.

    Returns:
        The count to launch, or None if the user cancelled.
    """
    print(f"\nProceed with {suggested} browsers?")
    print("   Enter: y = yes, n = no, or a number for custom count")
    try:
        answer = (input_fn or input)("   Your choice: ").strip().lower()
    except EOFError:
        return None

    if answer in ("y", "yes"):
        return suggested
    if answer in ("n", "no", ""):
        return None

    try:
        custom = int(answer)
    except ValueError:
        custom = 0
    if custom > 0:
        print(f"   Using custom count: {custom} browsers")
        return custom

    print("   Invalid input.")
    return None


async def run_fleet(
    settings: Settings,
    stream_url: StreamURL,
    budget: int,
    reporter: ConsoleReporter,
) -> int:
    """
    Run the stress test until interrupted.

    SIGINT/SIGTERM request a shutdown; repeated signals are ignored.
    """
    fleet = FleetOrchestrator(settings)
    loop = asyncio.get_running_loop()
    handled: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, fleet.request_shutdown)
            handled.append(sig)
        except NotImplementedError:
            logger.debug("Signal handlers not supported for %s", sig.name)

    reporter.stream.write("\nStarting stress test...\n\n")
    try:
        stats = await fleet.run(
            budget,
            stream_url,
            on_progress=reporter.launch_progress,
            on_update=reporter.status_line,
            on_monitoring=functools.partial(reporter.monitoring_started, settings),
        )
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)

    reporter.summary(stats, fleet.closed_count, fleet.teardown_total)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the hlsstress CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    settings_path = args.config or pathlib.Path.cwd() / DEFAULT_SETTINGS_FILE
    try:
        ensure_settings_file(settings_path)
        settings = Settings.load(settings_path)
    except (OSError, ValueError, yaml.YAMLError):
        logger.exception("Error loading settings from %s", settings_path)
        return EXIT_FAILURE

    if args.url:
        settings = replace(settings, stream_url=args.url)
    if args.headless:
        settings = replace(settings, headless=True)

    try:
        stream_url = settings.require_stream_url()
    except ConfigurationError as e:
        logger.error("%s", e)
        logger.info("Example: STREAM_URL=https://your-stream.com hlsstress")
        logger.info("Example: hlsstress --url=https://your-stream.com")
        return EXIT_FAILURE

    reporter = ConsoleReporter()
    try:
        reporter.banner(settings, stream_url)
        estimate = run_speed_test()
        budget, source = resolve_budget(
            estimate.download_kbps,
            settings.stream_bitrate_kbps,
            settings.bandwidth_safety_margin,
            manual_max=args.max,
            config_max=settings.max_browsers,
        )
        reporter.calculation(settings, estimate, budget, source)

        if not args.yes:
            choice = confirm_with_custom(budget)
            if choice is None:
                print("Cancelled.")
                return EXIT_OK
            budget = choice

        return asyncio.run(run_fleet(settings, stream_url, budget, reporter))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_OK
    except Exception:
        logger.exception("Fatal error")
        return EXIT_FAILURE


def run() -> None:
    """Console script wrapper."""
    sys.exit(main())


if __name__ == "__main__":
    run()
