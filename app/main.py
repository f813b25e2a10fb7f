"""
Finance Core daily process

Runs the daily tick loop, or a single tick with --once.

Usage:
    python -m app.main                      # loop until interrupted
    python -m app.main --once               # one tick for today
    python -m app.main --once --date 2024-01-03
"""

import argparse
import asyncio
import logging
import sys
from datetime import date

import structlog

from finance_core.config import get_settings, validate_all_settings
from finance_core.orchestrator import create_app_components


logger = structlog.get_logger("finance_core.app")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Finance Core daily tick")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Run date for --once (YYYY-MM-DD), defaults to today",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    components = create_app_components()

    if args.once:
        report = await components.runner.run_once(args.date)
        logger.info(
            "tick_report",
            run_date=report.run_date.isoformat(),
            fired=report.fired_count,
            failed=report.failed_count,
            skipped=report.skipped,
        )
        return 1 if report.failed_count else 0

    if not get_settings().scheduler.enabled:
        logger.warning("scheduler_disabled")
        return 0

    components.runner.start()
    try:
        await asyncio.Event().wait()
    finally:
        await components.runner.stop()
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)

    app_settings = get_settings().app
    logging.basicConfig(
        level=logging.DEBUG if app_settings.debug_mode else app_settings.log_level,
        format="%(message)s",
        stream=sys.stdout,
    )

    status = validate_all_settings()
    if not all(status.values()):
        logger.error("invalid_settings", status=status)
        return 2

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
