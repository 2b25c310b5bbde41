# main.py

"""Entry point for the Empik price tracker (commands and recheck loop)."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.config.settings import Settings

logger = logging.getLogger("price_tracker.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="price_tracker",
        description="Empik price tracker: watch prices, spot deals, get alerts.",
    )
    parser.add_argument(
        "--owner",
        default=Settings.DEFAULT_OWNER_ID,
        help="Subscriber id (default: TRACKER_OWNER_ID or 'local').",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser(
        "check", help="Show the current price of a URL, or search Empik.",
    )
    check.add_argument("query", nargs="+", help="Product URL or search terms.")

    track = sub.add_parser("track", help="Alert me when a price drops.")
    track.add_argument("url", help="Empik product URL.")
    track.add_argument("target", help="Target price in PLN.")
    track.add_argument(
        "--channel",
        default=Settings.DEFAULT_CHANNEL_ID,
        help="Destination channel id for the alert.",
    )

    untrack = sub.add_parser("untrack", help="Stop watching a URL.")
    untrack.add_argument("url", help="Empik product URL.")

    sub.add_parser("list", help="List my tracked items.")

    deals = sub.add_parser("deals", help="Show the biggest recent price drops.")
    deals.add_argument(
        "-n",
        "--limit",
        type=int,
        default=Settings.DEAL_LIMIT,
        help=f"Number of deals to show (default: {Settings.DEAL_LIMIT}).",
    )

    stats = sub.add_parser("stats", help="Price statistics for a URL.")
    stats.add_argument("url", help="Empik product URL.")

    run = sub.add_parser("run", help="Run the periodic recheck loop.")
    run.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Run a single recheck pass and exit.",
    )
    run.add_argument(
        "--console",
        action="store_true",
        default=False,
        help="Print alerts to the terminal instead of Discord.",
    )
    return parser


async def _dispatch(args: argparse.Namespace) -> int:
    """Route a parsed command to its runner coroutine."""
    from src.cli import runner

    service = runner.build_service()
    if args.command == "check":
        return await runner.cli_check(service, " ".join(args.query))
    if args.command == "track":
        return await runner.cli_track(
            service, args.owner, args.channel, args.url, args.target,
        )
    if args.command == "untrack":
        return await runner.cli_untrack(service, args.owner, args.url)
    if args.command == "list":
        return await runner.cli_list(service, args.owner)
    if args.command == "deals":
        return await runner.cli_deals(service, args.limit)
    if args.command == "stats":
        return await runner.cli_stats(service, args.url)
    return await runner.run_scheduler(service, args.once, args.console)


def main() -> None:
    """Parse arguments and run the requested command."""
    log_file = setup_logging()
    logger.info("price_tracker starting, log file: %s", log_file)

    args = _build_parser().parse_args()
    try:
        exit_code = asyncio.run(_dispatch(args))
    except Exception:
        logger.critical("Fatal error running %s", args.command, exc_info=True)
        raise
    finally:
        logger.info("price_tracker shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
