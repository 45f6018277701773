"""Sharecheck process entry-point.

Usage:
    python -m sharecheck [--dry-run] [--limit N] [--log-level LEVEL] [--log-format FORMAT]

One invocation performs one run: read the stalest links, probe them in
paced waves, write verdicts back, print the summary and exit.  Scheduling
repeated runs is left to cron or a CI schedule.

Exit status is ``1`` on a configuration error (before any network I/O) or
when no record source could be read; ``0`` otherwise, even when individual
links failed to check.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sharecheck.core import configure_logging
from sharecheck.core.exceptions import ConfigError, RunAbortedError
from sharecheck.core.run_context import RunContext
from sharecheck.core.settings import Settings


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be ≥ 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sharecheck",
        description="Check cloud-drive share links and write their liveness back to the catalog.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Probe links and log verdicts without writing them back.",
    )
    parser.add_argument(
        "--limit",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Check at most N links this run (capped by RUN_CAP).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = build_parser().parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"sharecheck: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)

    try:
        settings = Settings.load()
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)

    # .env values are only visible through Settings; CLI flags still win.
    configure_logging(
        level=args.log_level or settings.log_level,
        fmt=args.log_format or settings.log_format,
        force=True,
    )

    ctx = RunContext(dry_run=args.dry_run, limit=args.limit)
    logger.info("Sharecheck starting: %s", ctx)

    from sharecheck.orchestrator.runner import run_once  # noqa: PLC0415

    try:
        asyncio.run(run_once(ctx=ctx, settings=settings))
    except RunAbortedError as exc:
        logger.critical("Run aborted: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(130)

    sys.exit(0)


if __name__ == "__main__":
    main()
