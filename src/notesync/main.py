#!/usr/bin/env python3
"""notesync application entry point.

This module provides a unified entry point for all interfaces:
- CLI: Command-line interface over the local copy and the sync engine
- Web: RESTful HTTP API

Usage:
    notesync cli list-notes                    # Use CLI
    notesync cli new-note "Groceries"          # Create a note
    notesync cli sync now                      # Push pending changes
    notesync cli sync serve --port 8384        # Run the sync server
    notesync web [--port 8080]                 # Start web server
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the unified argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="notesync",
        description="notesync - offline-first note synchronization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  notesync cli list-notes                List all notes via CLI
  notesync cli sync now                  Sync pending changes with the remote
  notesync cli --local-remote remote.db sync now
  notesync web --port 8080               Start web server on port 8080
""",
    )

    parser.add_argument(
        "-d", "--config-dir",
        type=Path,
        default=None,
        help="Custom configuration directory (default: ~/.config/notesync/)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="interface", help="Interface to use")

    from notesync.cli import add_cli_subparser
    add_cli_subparser(subparsers)

    from notesync.web import add_web_subparser
    add_web_subparser(subparsers)

    return parser


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for the process."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """Main entry point for notesync.

    Parses arguments and dispatches to the appropriate interface.
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.interface == "cli":
        from notesync.cli import run as run_cli
        exit_code = run_cli(args.config_dir, args)
    elif args.interface == "web":
        from notesync.web import run as run_web
        exit_code = run_web(args.config_dir, args)
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
