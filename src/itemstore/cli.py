# src/itemstore/cli.py
"""
Command line interface for itemstore.

Commands:
- ``merge``: first-run provisioning of the primary store from the seed data
- ``list``: print one page of a collection
- ``hash-password``: print an Argon2id hash for a password
- ``otp``: print a one-time code

Exit codes: 0 on success, 1 when the operation failed, 2 for usage or
configuration errors.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .config import AppConfig, load_config
from .context import AppContext
from .exceptions import ConfigError, ItemStoreError
from .logging_config import configure_logging
from .models import MAX_ID
from .utils.crypto import get_new_salt, get_otp_code, get_password_hash

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


# =============================================================================
# OUTPUT FORMATTING
# =============================================================================

class OutputFormatter:
    """Formats CLI output as plain text or JSON."""

    def __init__(self, use_color: bool = True, json_output: bool = False):
        self.use_color = use_color and sys.stdout.isatty()
        self.json_output = json_output

    def _color(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        colors = {
            'green': '\033[92m',
            'red': '\033[91m',
            'bold': '\033[1m',
            'reset': '\033[0m'
        }
        return f"{colors.get(color, '')}{text}{colors['reset']}"

    def success(self, text: str) -> str:
        return self._color(f"✓ {text}", 'green')

    def error(self, text: str) -> str:
        return self._color(f"✗ {text}", 'red')

    def header(self, text: str) -> str:
        return self._color(text, 'bold')

    def emit(self, data: Dict[str, Any], text: str) -> None:
        print(json.dumps(data, indent=2) if self.json_output else text)


# =============================================================================
# CLI COMMANDS
# =============================================================================

async def _run_merge(config: AppConfig, connect_timeout: Optional[float], formatter: OutputFormatter) -> int:
    async with AppContext(config, connect_timeout=connect_timeout) as ctx:
        report = await ctx.first_run_merge()

    lines = [
        formatter.header("Database merge"),
        f"  Collections:      {report.collections}",
        f"  Items written:    {report.items_written}",
        f"  Passwords hashed: {report.passwords_hashed}",
        f"  Failed writes:    {report.failed_writes}",
    ]
    for failed in report.failed_ids:
        lines.append(f"    {formatter.error(failed)}")
    formatter.emit(
        {
            "collections": report.collections,
            "items_written": report.items_written,
            "passwords_hashed": report.passwords_hashed,
            "failed_writes": report.failed_writes,
            "failed_ids": report.failed_ids,
        },
        "\n".join(lines),
    )
    return EXIT_OK if report.ok else EXIT_FAILURE


def cmd_merge(config: AppConfig, connect_timeout: Optional[float] = None,
              formatter: OutputFormatter = None) -> int:
    """
    Copy the seed data in `data_path` into the configured primary store.

    Returns:
        Exit code (0 = every item written, 1 = some writes failed)
    """
    formatter = formatter or OutputFormatter()
    return asyncio.run(_run_merge(config, connect_timeout, formatter))


async def _run_list(config: AppConfig, collection: str, sort_key: str, filter_text: str,
                    skip: int, limit: int, connect_timeout: Optional[float],
                    formatter: OutputFormatter) -> int:
    async with AppContext(config, connect_timeout=connect_timeout) as ctx:
        async with ctx.locked() as store:
            if collection not in await store.get_collections():
                print(formatter.error(f"Unknown collection '{collection}'"), file=sys.stderr)
                return EXIT_FAILURE
            result = await store.get_items(collection, MAX_ID, MAX_ID, sort_key, filter_text, skip, limit)

    documents = [item.to_document() for item in result.map.values()]
    lines = [formatter.header(f"{collection}: {len(documents)} of {result.total_count}")]
    lines.extend(json.dumps(doc, ensure_ascii=False) for doc in documents)
    formatter.emit({"total_count": result.total_count, "items": documents}, "\n".join(lines))
    return EXIT_OK


def cmd_list(config: AppConfig, collection: str, sort_key: str = "", filter_text: str = "",
             skip: int = 0, limit: int = MAX_ID, connect_timeout: Optional[float] = None,
             formatter: OutputFormatter = None) -> int:
    """
    Print one page of `collection`.

    Returns:
        Exit code (0 = printed, 1 = unknown collection)
    """
    formatter = formatter or OutputFormatter()
    return asyncio.run(
        _run_list(config, collection, sort_key, filter_text, skip, limit, connect_timeout, formatter)
    )


def cmd_hash_password(password: Optional[str] = None, formatter: OutputFormatter = None) -> int:
    """
    Print an Argon2id PHC hash of `password` (read from stdin when omitted).

    Returns:
        Exit code (0 = hashed, 2 = no password given)
    """
    formatter = formatter or OutputFormatter()
    if password is None:
        password = sys.stdin.readline().rstrip("\r\n")
    if not password:
        print(formatter.error("Empty password"), file=sys.stderr)
        return EXIT_USAGE

    hashed = get_password_hash(password, get_new_salt())
    if not hashed:
        print(formatter.error("Hashing failed"), file=sys.stderr)
        return EXIT_FAILURE
    formatter.emit({"hash": hashed}, hashed)
    return EXIT_OK


def cmd_otp(formatter: OutputFormatter = None) -> int:
    """Print a fresh one-time code."""
    formatter = formatter or OutputFormatter()
    code = get_otp_code()
    formatter.emit({"otp": code}, code)
    return EXIT_OK


# =============================================================================
# MAIN CLI ENTRY POINT
# =============================================================================

def _non_negative(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"{value} is negative")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the itemstore CLI."""
    parser = argparse.ArgumentParser(
        prog="itemstore",
        description="itemstore data management CLI"
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
        default=None
    )
    parser.add_argument("--data-path", help="Directory with seed data and local files", default=None)
    parser.add_argument("--db-url", help="MongoDB connection URI", default=None)
    parser.add_argument("--db-name", help="MongoDB database name", default=None)
    parser.add_argument(
        "--store-type",
        help="Primary store backend",
        choices=["mongo", "file"],
        default=None
    )
    parser.add_argument(
        "--connect-timeout",
        help="Give up connecting after this many seconds",
        type=float,
        default=None
    )
    parser.add_argument(
        "--json",
        help="Output in JSON format",
        action="store_true"
    )
    parser.add_argument(
        "--no-color",
        help="Disable colored output",
        action="store_true"
    )
    parser.add_argument(
        "-v", "--verbose",
        help="Log to the console (-v info, -vv debug)",
        action="count",
        default=0
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("merge", help="Provision the primary store from the seed data")

    list_parser = subparsers.add_parser("list", help="Print items of a collection")
    list_parser.add_argument("collection", help="Collection name")
    list_parser.add_argument("--sort", default="", help="Sort key, e.g. strs.name")
    list_parser.add_argument("--filter", default="", help="JSON filter (sorted mode only)")
    list_parser.add_argument("--skip", type=_non_negative, default=0, help="Rows to skip")
    list_parser.add_argument("--limit", type=_non_negative, default=MAX_ID, help="Maximum rows")

    hash_parser = subparsers.add_parser("hash-password", help="Print an Argon2id password hash")
    hash_parser.add_argument("password", nargs="?", default=None, help="Password (stdin when omitted)")

    subparsers.add_parser("otp", help="Print a one-time code")

    return parser


def _config_overrides(parsed: argparse.Namespace) -> Dict[str, Any]:
    storage: Dict[str, Any] = {}
    mongo: Dict[str, Any] = {}
    if parsed.data_path is not None:
        storage["data_path"] = parsed.data_path
    if parsed.store_type is not None:
        storage["type"] = parsed.store_type
    if parsed.db_url is not None:
        mongo["url"] = parsed.db_url
    if parsed.db_name is not None:
        mongo["database"] = parsed.db_name
    if mongo:
        storage["mongo"] = mongo
    return {"storage": storage} if storage else {}


def _configure_logging(config: AppConfig, verbosity: int) -> None:
    logging_config = config.logging.model_dump()
    if verbosity:
        logging_config["console_enabled"] = True
        logging_config["console_level"] = "DEBUG" if verbosity > 1 else "INFO"
        components = dict(logging_config.get("components") or {})
        components["itemstore"] = logging_config["console_level"]
        logging_config["components"] = components
    configure_logging(config=logging_config)


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the itemstore CLI.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    formatter = OutputFormatter(
        use_color=not parsed.no_color,
        json_output=parsed.json
    )

    if parsed.command == "hash-password":
        return cmd_hash_password(password=parsed.password, formatter=formatter)
    elif parsed.command == "otp":
        return cmd_otp(formatter=formatter)
    elif parsed.command not in ("merge", "list"):
        parser.print_help()
        return EXIT_USAGE

    try:
        config = load_config(config_file_path=parsed.config, overrides=_config_overrides(parsed))
    except ConfigError as e:
        print(formatter.error(str(e)), file=sys.stderr)
        return EXIT_USAGE
    _configure_logging(config, parsed.verbose)

    try:
        if parsed.command == "merge":
            return cmd_merge(config, connect_timeout=parsed.connect_timeout, formatter=formatter)
        return cmd_list(
            config,
            parsed.collection,
            sort_key=parsed.sort,
            filter_text=parsed.filter,
            skip=parsed.skip,
            limit=parsed.limit,
            connect_timeout=parsed.connect_timeout,
            formatter=formatter
        )
    except ItemStoreError as e:
        logger.error(f"{parsed.command} failed: {e}")
        print(formatter.error(str(e)), file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
