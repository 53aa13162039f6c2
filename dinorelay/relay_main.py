#!/usr/bin/env python3
"""
relay_main.py — CLI entry point for dinorelay.

Sub-commands
------------
watch   Seed state from the save directory, start the file-system monitor
        and relay every player save change to the API endpoint.

scan    Run the startup scan only and log every tracked player file.
        Nothing is sent.

Usage
-----
    # Relay changes from the Evrima player database folder
    python -m dinorelay.relay_main watch \\
        --watch-path /srv/evrima/TheIsle/Saved/Databases/Survival/Players \\
        --api-url https://example.org/api/get-event \\
        --log-file file_watcher.log

    # Inspect what the relay would track
    python -m dinorelay.relay_main scan --watch-path ./Players
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from dinorelay.bootstrap import seed_state
from dinorelay.config import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SETTLE_DELAY,
    VERSION,
    RelayConfig,
)
from dinorelay.delivery import EventSender
from dinorelay.identity import subject_id_from_path
from dinorelay.monitor import Monitor
from dinorelay.reconciler import Reconciler
from dinorelay.state import FileStateStore

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("dinorelay")


# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

def configure_logging(log_file: str | None = None, verbose: bool = False) -> None:
    """Log to the console and, if *log_file* is set, append to that file.

    Raises:
        OSError: If the log file cannot be opened.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _require_directory(path: str) -> None:
    if not os.path.isdir(path):
        logger.error("Directory does not exist: %s", path)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Watch sub-command
# ---------------------------------------------------------------------------

def cmd_watch(args: argparse.Namespace) -> None:
    """Seed state, start the monitor and run the reconciliation loop."""
    config = config_from_args(args)

    try:
        configure_logging(config.log_file, args.verbose)
    except OSError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error("Cannot open log file %s: %s", config.log_file, exc)
        sys.exit(1)

    logger.info("=== Starting dinorelay %s ===", VERSION)
    logger.info("Watch path   : %s", config.watch_path)
    logger.info("API URL      : %s", config.api_url)
    logger.info("Poll interval: %.1f s", config.poll_interval)
    logger.info("Retries      : %d x %.1f s", config.max_attempts, config.retry_delay)
    logger.info("Recursive    : %s", config.recursive)

    _require_directory(config.watch_path)

    store = FileStateStore()
    monitor = Monitor()
    sender = EventSender(
        config.api_url,
        timeout=config.request_timeout,
        max_attempts=config.max_attempts,
        retry_delay=config.retry_delay,
    )
    reconciler = Reconciler(
        store,
        sender,
        settle_delay=config.settle_delay,
        poll_interval=config.poll_interval,
        recursive=config.recursive,
        watch_directory=monitor.add_path,
        unwatch_directory=monitor.remove_path,
    )

    root = os.path.abspath(config.watch_path)
    monitor.add_path(root)
    scan = seed_state(root, store, recursive=config.recursive)
    for directory in scan.directories:
        reconciler.known_directories.add(directory)
        monitor.add_path(directory)

    try:
        monitor.start()
    except OSError as exc:
        logger.error("Error adding watch path: %s", exc)
        sys.exit(1)

    logger.info("Watching directory: %s  Press Ctrl+C to stop.", root)
    try:
        reconciler.run(monitor.events)
    except KeyboardInterrupt:
        logger.info("Relay stopped by user.")
    finally:
        monitor.stop()
        sender.close()


# ---------------------------------------------------------------------------
# Scan sub-command
# ---------------------------------------------------------------------------

def cmd_scan(args: argparse.Namespace) -> None:
    """Run the bootstrap scan and list the tracked subjects."""
    configure_logging(None, args.verbose)
    _require_directory(args.watch_path)

    store = FileStateStore()
    result = seed_state(args.watch_path, store, recursive=args.recursive)
    for path in sorted(result.files):
        steam_id = subject_id_from_path(path)
        cached = "cached" if path in store.cache else "unreadable"
        logger.info("%-20s %-10s %s", steam_id or "-", cached, path)
    logger.info(
        "%d file(s), %d cached, %d subdirector%s",
        len(result.files),
        result.cached,
        len(result.directories),
        "y" if len(result.directories) == 1 else "ies",
    )


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def config_from_args(args: argparse.Namespace) -> RelayConfig:
    return RelayConfig(
        watch_path=args.watch_path,
        api_url=args.api_url,
        log_file=args.log_file,
        poll_interval=args.poll_interval,
        max_attempts=args.max_attempts,
        retry_delay=args.retry_delay,
        request_timeout=args.timeout,
        settle_delay=args.settle_delay,
        recursive=args.recursive,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="dinorelay",
        description="dinorelay — relay player save-file changes to an HTTP API.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)

    # -- watch --
    watch_p = sub.add_parser("watch", help="Watch the save directory and relay changes.")
    watch_p.add_argument(
        "--watch-path",
        required=True,
        help="Directory holding the per-player save files.",
    )
    watch_p.add_argument(
        "--api-url",
        required=True,
        help="Endpoint that receives the JSON events.",
    )
    watch_p.add_argument(
        "--log-file",
        default=None,
        help="Append log lines to this file as well as the console.",
    )
    watch_p.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between sweeps for missed deletions (default: {DEFAULT_POLL_INTERVAL:g}).",
    )
    watch_p.add_argument(
        "--max-attempts",
        type=int,
        default=DEFAULT_MAX_ATTEMPTS,
        help=f"Delivery attempts per event (default: {DEFAULT_MAX_ATTEMPTS}).",
    )
    watch_p.add_argument(
        "--retry-delay",
        type=float,
        default=DEFAULT_RETRY_DELAY,
        help=f"Seconds between delivery attempts (default: {DEFAULT_RETRY_DELAY:g}).",
    )
    watch_p.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help=f"Per-attempt HTTP timeout in seconds (default: {DEFAULT_REQUEST_TIMEOUT:g}).",
    )
    watch_p.add_argument(
        "--settle-delay",
        type=float,
        default=DEFAULT_SETTLE_DELAY,
        help=f"Seconds to wait after a create before reading (default: {DEFAULT_SETTLE_DELAY:g}).",
    )
    watch_p.add_argument(
        "--recursive",
        action="store_true",
        help="Also watch subdirectories, including ones created later.",
    )
    watch_p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")

    # -- scan --
    scan_p = sub.add_parser("scan", help="Run the startup scan and list tracked files.")
    scan_p.add_argument(
        "--watch-path",
        required=True,
        help="Directory holding the per-player save files.",
    )
    scan_p.add_argument(
        "--recursive",
        action="store_true",
        help="Include subdirectories.",
    )
    scan_p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> None:
    """Parse CLI args and dispatch to the appropriate sub-command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "watch":
        cmd_watch(args)
    elif args.command == "scan":
        cmd_scan(args)


if __name__ == "__main__":
    main()
