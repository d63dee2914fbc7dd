"""avdusage - command line entry point for scheduled runs."""

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from avdusage.config import Settings
from avdusage.logger import close_logger, get_logger
from avdusage.pipeline import ProcessPipeline, SessionPipeline
from avdusage.retention import Housekeeper

COMMANDS = ("sessions", "processes", "housekeeping")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="avdusage",
        description="Sample AVD session and process usage into CSV artifacts.",
    )
    parser.add_argument("command", choices=COMMANDS, help="Pipeline to run once")
    parser.add_argument(
        "--output-root",
        type=Path,
        default=None,
        help="Root directory for artifacts and logs (overrides AVDUSAGE_OUTPUT_ROOT)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides AVDUSAGE_LOG_LEVEL)",
    )
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.output_root is not None:
        overrides["output_root"] = args.output_root
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    return Settings(**overrides)


def main(argv: Sequence[str] | None = None) -> int:
    """Run one pipeline and return its exit code."""
    args = parse_args(argv)
    try:
        settings = load_settings(args)
    except ValidationError as exc:
        print(f"avdusage: invalid configuration: {exc}", file=sys.stderr)
        return 2

    try:
        logger = get_logger(args.command, settings.log_dir, settings.log_level)
    except OSError as exc:
        print(f"avdusage: cannot open log in {settings.log_dir}: {exc}", file=sys.stderr)
        return 1

    try:
        if args.command == "housekeeping":
            Housekeeper(settings, logger).run()
            return 0
        if args.command == "sessions":
            return SessionPipeline(settings, logger).run().exit_code
        return ProcessPipeline(settings, logger).run().exit_code
    finally:
        close_logger(logger)


if __name__ == "__main__":
    sys.exit(main())
