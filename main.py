# main.py

"""Entry point for the pricewatch price tracker CLI."""

import argparse
import asyncio
import logging
import sys

from pricewatch.config.logging_config import setup_logging

logger = logging.getLogger("pricewatch.main")


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="pricewatch",
        description="Track product prices across arbitrary shop pages.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress messages on stderr.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Start tracking a product URL.")
    add.add_argument("url", help="Product page URL.")
    add.add_argument(
        "-i",
        "--interval",
        type=_positive_int,
        default=None,
        help="Refresh interval in seconds (default: 3600).",
    )

    commands.add_parser("list", help="Show tracked items.")

    remove = commands.add_parser("remove", help="Stop tracking an item.")
    remove.add_argument("item_id", type=int)

    history = commands.add_parser("history", help="Show price history.")
    history.add_argument("item_id", type=int)
    history.add_argument(
        "-d",
        "--days",
        type=_positive_int,
        default=None,
        help="Only show the last N days.",
    )

    refresh = commands.add_parser(
        "refresh", help="Refresh one item now, ignoring its schedule.",
    )
    refresh.add_argument("item_id", type=int)

    extract = commands.add_parser(
        "extract", help="Extract a product snapshot from a URL as JSON.",
    )
    extract.add_argument("url")

    commands.add_parser("check", help="Run a single check of due items.")
    commands.add_parser("run", help="Run the recurring scheduler.")
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Run the selected command and return its exit code."""
    from pricewatch.cli import runner
    from pricewatch.storage.item_store import ItemStore

    if args.command == "extract":
        return runner.extract_url(args.url)

    store = ItemStore()
    try:
        if args.command == "add":
            return runner.add_item(store, args.url, args.interval)
        if args.command == "list":
            return runner.list_items(store)
        if args.command == "remove":
            return runner.remove_item(store, args.item_id)
        if args.command == "history":
            return runner.show_history(store, args.item_id, args.days)
        if args.command == "refresh":
            return runner.refresh_item(store, args.item_id)
        if args.command == "check":
            return asyncio.run(runner.run_check(store))
        return runner.run_scheduler(store)
    finally:
        store.close()


def main() -> None:
    """Parse arguments and route to the matching command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(verbose=args.verbose)
    logger.info("pricewatch %s starting, log file: %s", args.command, log_file)

    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error in '%s'", args.command, exc_info=True)
        raise
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
