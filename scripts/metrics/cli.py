#!/usr/bin/env python3
"""
CLI tool for computing typing analytics from an exported event log.

Usage:
    typing-analytics EVENTS.jsonl [options]

Examples:
    # All metrics for every event in the export
    typing-analytics events.jsonl

    # One session, default metric selection, as JSON
    typing-analytics events.jsonl --session-id abc --defaults --format json

    # Only keystroke and paste events after a date
    typing-analytics events.jsonl --event-type keydown --event-type paste --start 2024-01-01T00:00:00Z
"""

import argparse
import sys
from pathlib import Path

from tracking.schema import EventQueryFilters, MalformedEvent, parse_timestamp

from .engine import MetricsEngine
from .formatters import JSONFormatter, MarkdownFormatter
from .jsonl_utils import JSONLReader
from .typing_metrics import DEFAULT_METRICS, get_default_registry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="typing-analytics",
        description="Compute typing behavior metrics from a JSONL event export",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s events.jsonl                              # All metrics
  %(prog)s events.jsonl --session-id abc --format json
  %(prog)s events.jsonl --metric wpm --metric pasteRatio
        """,
    )

    parser.add_argument("events", type=str, metavar="EVENTS", help="JSONL file with one event per line")
    parser.add_argument("--project-id", type=str, help="Only events of this project")
    parser.add_argument("--session-id", type=str, help="Only events of this session")
    parser.add_argument("--start", type=str, metavar="ISO", help="Only events at or after this time")
    parser.add_argument("--end", type=str, metavar="ISO", help="Only events at or before this time")
    parser.add_argument(
        "--event-type",
        action="append",
        dest="event_types",
        metavar="TYPE",
        help="Only events of this type (repeatable)",
    )
    parser.add_argument(
        "--metric",
        action="append",
        dest="metrics",
        metavar="ID",
        help="Show only this metric (repeatable)",
    )
    parser.add_argument(
        "--defaults",
        action="store_true",
        help="Show the default metric selection",
    )
    parser.add_argument(
        "--format",
        choices=["markdown", "json"],
        default="markdown",
        help="Output format (default: markdown)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 if any metric calculator failed",
    )

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    events_path = Path(args.events)
    if not events_path.exists():
        print(f"Error: Event file not found: {events_path}", file=sys.stderr)
        return 2

    try:
        filters = EventQueryFilters(
            project_id=args.project_id,
            session_id=args.session_id,
            start_date=parse_timestamp(args.start) if args.start else None,
            end_date=parse_timestamp(args.end) if args.end else None,
            event_types=args.event_types,
        )
    except (MalformedEvent, ValueError) as e:
        print(f"Error: Invalid filters: {e}", file=sys.stderr)
        return 2

    events = JSONLReader.read_events(events_path, filters)

    registry = get_default_registry()
    engine = MetricsEngine(registry)
    run = engine.run_detailed(events)
    engine.close()

    selected = args.metrics
    if selected is None and args.defaults:
        selected = DEFAULT_METRICS

    if args.format == "json":
        print(JSONFormatter.format(run.values, registry, selected))
    else:
        print(MarkdownFormatter.format(run.values, registry, selected))
        print(f"_{len(events)} events analyzed_")

    if args.strict and run.failures:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
