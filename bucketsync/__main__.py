"""CLI entry point for bucketsync."""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from .config import Config, load_config
from .errors import BucketSyncError
from .models import parse_timestamp
from .stores import ServerStore
from .sync import list_buckets, sync_run
from .sync.testdata import setup_test_remotes

logger = logging.getLogger("bucketsync")


LOG_LEVELS = {
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

# Context a sync log call can attach with extra={...}
CONTEXT_FIELDS = ("bucket_id", "store")

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with the bucket and store a message is about."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level = LOG_LEVELS.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logging.basicConfig(level=level, handlers=[handler])

    # Request lines only show up when debugging a sync
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            logging.DEBUG if level == logging.DEBUG else logging.WARNING
        )


def _load(args: argparse.Namespace) -> Config:
    """Load config and apply command line overrides."""
    config = load_config(args.config)

    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.testing:
        config.server.testing = True
    if args.sync_dir:
        config.sync.sync_dir = str(args.sync_dir)

    return config


def cmd_sync(args: argparse.Namespace) -> int:
    """Run one sync pass."""
    try:
        config = _load(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    buckets = None
    if args.buckets is not None:
        buckets = [b.strip() for b in args.buckets.split(",") if b.strip()]

    server = ServerStore(config.server)
    try:
        start = parse_timestamp(args.start_date) if args.start_date else None
        result = sync_run(server, config, buckets=buckets, start=start)
    except (BucketSyncError, ValueError) as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        server.close()

    print(f"Synced device {result.device_id}")
    for report in result.pulls:
        print(f"  Pulled {report.new_events} events from {report.source}")
    for path, error in result.failed_remotes.items():
        print(f"  Skipped {path}: {error}")
    print(f"  Pushed {result.pushed_events} events to {result.push.destination}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List buckets and event counts of every store."""
    try:
        config = _load(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    server = ServerStore(config.server)
    try:
        report = list_buckets(server, config)
    except BucketSyncError as e:
        logger.error(f"Listing buckets failed: {e}")
        return 1
    finally:
        server.close()

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        for store, counts in report.items():
            print(f"{store}:")
            if not counts:
                print("  (no buckets)")
            for bucket_id, count in counts.items():
                print(f"  - {bucket_id}: {count} events")

    return 0


def cmd_seed_test(args: argparse.Namespace) -> int:
    """Write fake remote stores into the sync folder."""
    try:
        config = _load(args)
        paths = setup_test_remotes(config.sync.sync_path, args.count, config.sync)
    except (BucketSyncError, ValueError) as e:
        logger.error(f"Seeding test remotes failed: {e}")
        return 1

    for path in paths:
        print(f"  Wrote {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="bucketsync",
        description="Sync activity buckets between devices through a shared folder",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        dest="json_logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )
    parser.add_argument("--host", type=str, default=None, help="Live store server host")
    parser.add_argument("--port", type=int, default=None, help="Live store server port")
    parser.add_argument(
        "--testing",
        action="store_true",
        help="Talk to the testing server (port 5666 unless --port is given)",
    )
    parser.add_argument(
        "--sync-dir",
        type=Path,
        default=None,
        help="Shared sync folder (default: ~/ActivityWatchSync)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Run one sync pass")
    sync_parser.add_argument(
        "--buckets",
        type=str,
        default=None,
        help="Comma separated bucket ids to sync (default: all known buckets)",
    )
    sync_parser.add_argument(
        "--start-date",
        type=str,
        default=None,
        help="ISO-8601 start time (accepted, not yet used by the merge)",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # List command
    list_parser = subparsers.add_parser("list", help="List buckets in every store")
    list_parser.add_argument(
        "--json",
        action="store_true",
        help="Output the report as JSON",
    )
    list_parser.set_defaults(func=cmd_list)

    # Seed command
    seed_parser = subparsers.add_parser(
        "seed-test", help="Write fake remote stores into the sync folder"
    )
    seed_parser.add_argument(
        "-n", "--count",
        type=int,
        default=2,
        help="Number of fake remotes (default: 2)",
    )
    seed_parser.set_defaults(func=cmd_seed_test)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
