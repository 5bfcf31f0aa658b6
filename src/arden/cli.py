# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Arden command-line interface.

Commands:
  import           Shortcut for `claude import`
  install          Shortcut for `claude install`
  claude import    Import Claude Code usage data from local JSONL files
  claude install   Configure Claude Code hooks to send Arden telemetry
  claude hook      (internal) invoked by Claude Code runtime
  events send      Send a single telemetry event
  events validate  Validate telemetry events without sending them
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .claude.hooks import CLAUDE_HOOKS, handle_claude_hook
from .claude.importer import DEFAULT_CLAUDE_DIR, DEFAULT_LIMIT, import_claude_usage
from .claude.install import DEFAULT_SETTINGS_PATH, install_hooks
from .config import get_host, load_config
from .events.send import send_event
from .events.validate import validate_command

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration (stderr, so stdout stays machine-readable)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
        force=True,
    )


# =============================================================================
# HANDLERS
# =============================================================================

def run_import(args: argparse.Namespace) -> int:
    """Handler for `claude import`."""
    try:
        limit = int(args.limit)
    except (TypeError, ValueError):
        limit = 0
    if limit <= 0:
        logger.error(f"--limit must be a positive integer, got {args.limit!r}")
        return 1

    try:
        summary = import_claude_usage(
            claude_dir=args.claude_dir,
            limit=limit,
            dry_run=args.dry_run,
        )
    except FileNotFoundError as e:
        logger.error(str(e))
        logger.info("Try running with --claude-dir <path> if Claude is installed elsewhere")
        return 1

    if args.dry_run:
        message = f"[DRY RUN] {summary.events_sent} events from {summary.files} files would be sent"
        if summary.events_failed:
            message += f" ({summary.events_failed} would be rejected)"
        print(message)
    else:
        print(
            f"Imported {summary.events_sent} Claude Code events from {summary.files} files "
            f"({summary.events_failed} failed, {summary.malformed_lines} malformed lines skipped)"
        )
    return 0


def run_install(args: argparse.Namespace) -> int:
    """Handler for `claude install`."""
    return install_hooks(
        settings_path=args.settings,
        host=args.host,
        yes=args.yes,
        dry_run=args.dry_run,
        backup=not args.no_backup,
    )


def run_hook(args: argparse.Namespace) -> int:
    """Handler for `claude hook`."""
    return handle_claude_hook(
        args.hook,
        dry_run=args.dry_run,
        print_only=args.print,
        host=args.host,
    )


def run_send(args: argparse.Namespace) -> int:
    """Handler for `events send`."""
    return send_event(
        agent=args.agent,
        user=args.user,
        bid=args.bid,
        mult=args.mult,
        time_ms=args.time,
        data=args.data,
        pairs=args.pairs,
        host=args.send_host or args.host,
        token=args.token,
        dry_run=args.dry_run,
        print_event=args.print,
    )


def run_validate(args: argparse.Namespace) -> int:
    """Handler for `events validate`."""
    return validate_command(file=args.file, print_events=args.print)


# =============================================================================
# PARSER BUILDERS
# =============================================================================

def build_import_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "import",
        help="Import Claude Code usage data from local JSONL files",
        description="Import Claude Code usage data from local JSONL files",
    )
    parser.add_argument(
        "--claude-dir",
        default=str(DEFAULT_CLAUDE_DIR),
        help="Custom path to Claude data directory (default: ~/.claude)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview events without sending to API"
    )
    parser.add_argument(
        "--limit",
        default=str(DEFAULT_LIMIT),
        help=f"Limit number of lines to process per file (default: {DEFAULT_LIMIT})"
    )
    parser.set_defaults(handler=run_import)
    return parser


def build_install_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "install",
        help="Configure Claude Code hooks to send Arden telemetry",
        description="Configure Claude Code hooks to send Arden telemetry",
    )
    parser.add_argument(
        "--settings", "-s",
        default=DEFAULT_SETTINGS_PATH,
        help=f"Path to settings.json (default: {DEFAULT_SETTINGS_PATH})"
    )
    parser.add_argument(
        "--yes", "-y", "--force",
        dest="yes",
        action="store_true",
        help="Skip confirmation prompts"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without writing"
    )
    parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Skip backup of existing settings.json"
    )
    parser.set_defaults(handler=run_install)
    return parser


def build_hook_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "hook",
        help="(internal) invoked by Claude Code runtime",
        description="(internal) invoked by Claude Code runtime",
    )
    parser.add_argument("hook", help=f"Hook name ({', '.join(CLAUDE_HOOKS)})")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate payload and skip API call"
    )
    parser.add_argument(
        "--print",
        action="store_true",
        help="Print enriched payload to stdout"
    )
    parser.set_defaults(handler=run_hook)
    return parser


def build_send_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "send",
        help="Send a single telemetry event",
        description="Send a single telemetry event. Extra key=value arguments are merged into the data payload.",
    )
    parser.add_argument("--agent", help="Agent ID (required)")
    parser.add_argument("--user", help="User ULID")
    parser.add_argument("--bid", default="0", help="Bid amount in micro-cents (default: 0)")
    parser.add_argument("--mult", default="0", help="Bid multiplier (default: 0)")
    parser.add_argument("--time", help="Timestamp in epoch milliseconds")
    parser.add_argument("--data", help="Data payload as JSON string, @file, or - for stdin")
    parser.add_argument("--host", dest="send_host", help="API host URL")
    parser.add_argument("--token", "-t", help="Bearer token for authentication")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and print but do not send"
    )
    parser.add_argument(
        "--print",
        action="store_true",
        help="Pretty-print the event payload"
    )
    parser.add_argument("pairs", nargs="*", metavar="key=value", help="Extra data fields")
    parser.set_defaults(handler=run_send)
    return parser


def build_validate_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "validate",
        help="Validate telemetry events without sending them",
        description="Validate telemetry events without sending them",
    )
    parser.add_argument("--file", help="JSON file to validate (supports .gz), or - for stdin")
    parser.add_argument(
        "--print",
        action="store_true",
        help="Pretty-print the validated events"
    )
    parser.set_defaults(handler=run_validate)
    return parser


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level `arden` parser."""
    parser = argparse.ArgumentParser(
        prog="arden",
        description="Arden CLI tool",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--host", "-H",
        default=None,
        help="API host URL (default: $HOST or config file, then https://ardenstats.com)"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: $LOG_LEVEL or config file, then INFO)"
    )

    commands = parser.add_subparsers(dest="command", help="Command to execute")

    # Shortcuts for the Claude Code commands
    build_import_parser(commands)
    build_install_parser(commands)

    claude_parser = commands.add_parser("claude", help="Claude Code integration")
    claude_commands = claude_parser.add_subparsers(dest="claude_command")
    build_import_parser(claude_commands)
    build_install_parser(claude_commands)
    build_hook_parser(claude_commands)

    events_parser = commands.add_parser("events", help="Send telemetry events to Arden Stats API")
    events_commands = events_parser.add_subparsers(dest="events_command")
    build_send_parser(events_commands)
    build_validate_parser(events_commands)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config()
    setup_logging(args.log_level or config.log_level)

    if args.host:
        args.host = get_host(args.host)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"[CLI Error] {e}")
        return 1


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
