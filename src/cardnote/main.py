#!/usr/bin/env python
"""Command line entry point for cardnote."""
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from cardnote import __version__
from cardnote.config import config
from cardnote.exceptions import CardNoteError, InvalidReferenceError
from cardnote.models.db_models import init_db
from cardnote.observability import configure_logging, metrics
from cardnote.references.parser import assert_reference_invariant, parse_references
from cardnote.services.card_service import CardService
from cardnote.storage.sql_store import SqlCardStore

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="cardnote reference tools")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("CARDNOTE_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level.upper()
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files (console only if omitted)",
        type=str,
        default=str(config.log_dir) if config.log_dir else None
    )
    parser.add_argument(
        "--metrics",
        help="Print per-operation call counts and timings to stderr on exit",
        action="store_true"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Validate references in a file")
    check.add_argument("file", help="Text file to check ('-' for stdin)")

    normalize = commands.add_parser(
        "normalize", help="Print a file with reference IDs added and orphans removed"
    )
    normalize.add_argument("file", help="Text file to normalize ('-' for stdin)")

    sync = commands.add_parser("sync", help="Save a card's text and sync its backlinks")
    sync.add_argument("--card-id", type=int, required=True)
    sync.add_argument("file", help="New card text ('-' for stdin)")

    backlinks = commands.add_parser("backlinks", help="List references to a card")
    backlinks.add_argument("--card-id", type=int, required=True)

    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _setup_logging(args) -> None:
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    if args.log_dir:
        try:
            configure_logging(log_dir=args.log_dir, level=log_level, console=True)
            return
        except OSError as e:
            logging.basicConfig(level=log_level)
            logger.warning(f"Failed to configure file logging: {e}")
            return
    logging.basicConfig(level=log_level)


def _run_check(args) -> int:
    try:
        assert_reference_invariant(_read_text(args.file))
    except OSError as e:
        print(f"{args.file}: cannot read file: {e}", file=sys.stderr)
        return 1
    except InvalidReferenceError as e:
        print(f"{args.file}: {e}", file=sys.stderr)
        return 1
    print(f"{args.file}: ok")
    return 0


def _run_normalize(args) -> int:
    try:
        text = _read_text(args.file)
    except OSError as e:
        print(f"{args.file}: cannot read file: {e}", file=sys.stderr)
        return 1
    sys.stdout.write(parse_references(text).text)
    return 0


async def _run_sync(service: CardService, args) -> int:
    try:
        text = _read_text(args.file)
    except OSError as e:
        print(f"{args.file}: cannot read file: {e}", file=sys.stderr)
        return 1
    card = await service.save_content(args.card_id, text)
    print(f"card {card.id} saved")
    return 0


async def _run_backlinks(service: CardService, args) -> int:
    for backlink in await service.get_backlinks(args.card_id):
        print(
            f"card {backlink.source_card_id} -> [[{backlink.title_snapshot}]]"
            f"({backlink.placeholder}) ref={backlink.ref_id}"
        )
    return 0


def _run_command(args) -> int:
    if args.command == "check":
        return _run_check(args)
    if args.command == "normalize":
        return _run_normalize(args)

    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1

    service = CardService(SqlCardStore(engine=engine))
    runner = _run_sync if args.command == "sync" else _run_backlinks
    try:
        return asyncio.run(runner(service, args))
    except CardNoteError as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        engine.dispose()


def main(argv=None) -> int:
    """Run the cardnote command line."""
    args = parse_args(argv)
    update_config(args)
    _setup_logging(args)

    try:
        return _run_command(args)
    finally:
        if args.metrics:
            print(metrics.format_report() or "no operations recorded", file=sys.stderr)


if __name__ == "__main__":
    sys.exit(main())
