# main.py

"""Entry point for the pricewatch pipeline CLI."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.models.tracked_item import FetchMode

logger = logging.getLogger("pricewatch.main")

_MODES = [m.value for m in FetchMode]


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="pricewatch",
        description="Competitor price watcher: scrape, compare, alert.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser(
        "run", help="Run one scheduled tick (call hourly from cron).",
    )

    check = sub.add_parser("check", help="Recheck one item now.")
    check.add_argument("item_id", type=int)

    validate = sub.add_parser(
        "validate", help="Dry-run a selector against a URL.",
    )
    validate.add_argument("url")
    validate.add_argument("selector")
    validate.add_argument(
        "-m", "--mode", choices=_MODES, default=FetchMode.AUTO.value,
    )

    user = sub.add_parser("user", help="Register a user.")
    user.add_argument("email")
    user.add_argument(
        "--time",
        required=True,
        dest="check_time",
        help="Local daily check time, HH:MM.",
    )
    user.add_argument(
        "--tz", required=True, dest="timezone", help="IANA timezone.",
    )
    user.add_argument(
        "--unverified",
        action="store_true",
        default=False,
        help="Register without email verification.",
    )

    track = sub.add_parser("track", help="Track a price element.")
    track.add_argument("user_id", type=int)
    track.add_argument("url")
    track.add_argument("selector")
    track.add_argument(
        "-m", "--mode", choices=_MODES, default=FetchMode.AUTO.value,
    )
    track.add_argument("-l", "--label", default="")
    track.add_argument(
        "-c", "--category", type=int, default=None, dest="category_id",
    )

    for name, help_text in (
        ("pause", "Exclude an item from scheduled runs."),
        ("resume", "Put an item back into scheduled runs."),
        ("history", "Show an item's price history."),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("item_id", type=int)

    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Run the selected subcommand and return its exit code."""
    from src.cli import runner

    if args.command == "validate":
        return runner.run_validate(args.url, args.selector, args.mode)

    from src.storage.tracker_db import TrackerDB

    db = TrackerDB()
    try:
        if args.command == "run":
            return asyncio.run(runner.run_scheduled(db))
        if args.command == "check":
            return runner.run_check(db, args.item_id)
        if args.command == "user":
            return runner.run_add_user(
                db,
                args.email,
                args.check_time,
                args.timezone,
                not args.unverified,
            )
        if args.command == "track":
            return runner.run_track(
                db,
                args.user_id,
                args.url,
                args.selector,
                args.mode,
                args.label,
                args.category_id,
            )
        if args.command in ("pause", "resume"):
            return runner.run_set_paused(
                db, args.item_id, args.command == "pause",
            )
        return runner.run_history(db, args.item_id)
    finally:
        db.close()


def main() -> None:
    """Parse arguments, set up logging and run a subcommand."""
    log_file = setup_logging()
    logger.info("pricewatch starting, log file: %s", log_file)

    args = _build_parser().parse_args()
    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error in %s", args.command, exc_info=True)
        raise
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
