"""CLI entry point for delivering records to an HTTP endpoint.

Usage:
    python -m httpsink --config ./orders_sink.yaml --input ./orders.jsonl
    python -m httpsink --config ./orders_sink.yaml --input ./orders.csv --dry-run
    python -m httpsink --config ./orders_sink.yaml --validate

Exit codes:
    0 - all batches delivered (or skipped by the error handling table)
    1 - configuration, input or delivery failure
    2 - invalid command-line usage
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from httpsink import __version__
from httpsink.lib.config_loader import load_sink_definition
from httpsink.lib.errors import SinkError
from httpsink.lib.io import SUPPORTED_INPUT_FORMATS, read_records
from httpsink.lib.logging import setup_logging
from httpsink.lib.writer import DeliveryStats, HttpRecordWriter

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="http-sink",
        description="Deliver records to an HTTP endpoint in batches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Deliver a JSON Lines file
    http-sink --config ./orders_sink.yaml --input ./orders.jsonl

    # Load secrets from a .env file first
    http-sink --config ./orders_sink.yaml --input ./orders.csv --env-file .env

    # Validate the config and count records without sending anything
    http-sink --config ./orders_sink.yaml --input ./orders.jsonl --dry-run

    # Validate the config only
    http-sink --config ./orders_sink.yaml --validate
        """,
    )
    parser.add_argument("--config", "-c", required=True, help="Sink YAML configuration file")
    parser.add_argument("--input", "-i", dest="input_path", help="File with records to deliver")
    parser.add_argument(
        "--input-format",
        choices=sorted(SUPPORTED_INPUT_FORMATS),
        help="Input file format (default: detected from the file suffix)",
    )
    parser.add_argument("--json-path", help="Dotted path to the record list in a JSON input")
    parser.add_argument("--env-file", help="Load environment variables from this .env file")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and read the input without sending",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration only",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def print_stats(stats: DeliveryStats) -> None:
    print()
    print("Delivery summary:")
    print(f"  Records written:    {stats.records_written}")
    print(f"  Records delivered:  {stats.records_delivered}")
    print(f"  Records skipped:    {stats.records_skipped}")
    print(f"  Records dropped:    {stats.records_dropped}")
    print(f"  Batches delivered:  {stats.batches_delivered}")
    print(f"  Batches skipped:    {stats.batches_skipped}")
    print(f"  Batches failed:     {stats.batches_failed}")
    print(f"  HTTP attempts:      {stats.total_attempts}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.validate and not args.input_path:
        parser.error("--input is required unless --validate is given")

    setup_logging(verbose=args.verbose, json_format=args.json_logs, log_file=args.log_file)

    try:
        definition = load_sink_definition(args.config, env_file=args.env_file)
        config = definition.config
        print(
            f"Sink: {config.method.value} {config.url} "
            f"(format={config.message_format.value}, batch_size={config.batch_size})"
        )
        if args.validate:
            print("Configuration is valid.")
            return 0

        records = read_records(args.input_path, args.input_format, json_path=args.json_path)

        if args.dry_run:
            count = sum(1 for _ in records)
            batches = -(-count // config.batch_size)
            print(f"[DRY RUN] Would deliver {count} record(s) in {batches} batch(es)")
            return 0

        writer = HttpRecordWriter(config, definition.schema)
        try:
            with writer:
                for record in records:
                    writer.write(record)
        finally:
            print_stats(writer.stats)

    except SinkError as e:
        logger.error("%s", e.message)
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
