"""
cli.py - Command line entry point for journey trace reconstruction.

Usage:
    journeytrace parse trace.json              # result JSON on stdout
    journeytrace parse trace.json --pretty     # indented JSON
    journeytrace parse trace.json --summary    # one line per step
    journeytrace parse trace.json --flows      # one trace per user flow
    journeytrace parse trace.json --correlation-id 0f3c...  # one user only

Exit codes:
    0  parse succeeded
    1  parse completed but reported errors
    2  input could not be read or decoded
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from journeytrace.runtime.errors import ClipDecodeError
from journeytrace.runtime.flow_analyzer import filter_by_correlation_id
from journeytrace.runtime.trace_parser import FlowParseResult, TraceParser, TraceParseResult
from journeytrace.runtime.types import StepFlowData, decode_logs

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARSE_ERRORS = 1
EXIT_BAD_INPUT = 2


def format_summary(result: TraceParseResult) -> List[str]:
    """One line per step: sequence, journey, step order, result, handler."""
    lines = []
    for step in result.steps:
        data: StepFlowData = step.data
        lines.append(
            f"{step.context.sequence_number:>4}  {data.current_journey_name:<32} "
            f"step {data.step_order:<3} {data.result.value:<12} {data.action_handler or '-'}"
        )
    lines.append(
        f"\nSummary: {len(result.steps)} steps, {len(result.sessions)} sessions, {len(result.errors)} errors"
    )
    for error in result.errors:
        lines.append(f"  ERROR: {error}")
    return lines


def format_flow_summary(flow_results: List[FlowParseResult]) -> List[str]:
    lines = []
    for item in flow_results:
        flow = item.flow
        lines.append(f"Flow {flow.id}  {flow.policy_id}  {len(flow.log_ids)} logs  user={flow.user_email or '-'}")
        lines.extend("  " + line for line in format_summary(item.result))
        lines.append("")
    lines.append(f"{len(flow_results)} flows")
    return lines


def _cmd_parse(args: argparse.Namespace) -> int:
    path = Path(args.file)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT

    try:
        logs = decode_logs(raw)
    except ClipDecodeError as e:
        print(f"Error: {path} is not a journey recorder trace: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT

    parser = TraceParser()
    indent = 2 if args.pretty else None

    if args.flows:
        flow_results = parser.parse_flows(logs)
        if args.summary:
            print("\n".join(format_flow_summary(flow_results)))
        else:
            print(json.dumps({"flows": [item.to_dict() for item in flow_results]}, indent=indent))
        ok = bool(flow_results) and all(item.result.success for item in flow_results)
        return EXIT_OK if ok else EXIT_PARSE_ERRORS

    if args.correlation_id:
        logs = filter_by_correlation_id(logs, args.correlation_id)
    result = parser.parse(logs)

    if args.summary:
        print("\n".join(format_summary(result)))
    else:
        print(json.dumps(result.to_dict(), indent=indent))

    return EXIT_OK if result.success else EXIT_PARSE_ERRORS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="journeytrace",
        description="Rebuild user journey execution trees from journey recorder logs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Parse a JSON trace file")
    parse_cmd.add_argument("file", help="JSON array of logs, or an object with a 'logs' array")
    parse_cmd.add_argument("--pretty", action="store_true", help="Indent the result JSON")
    parse_cmd.add_argument("--summary", action="store_true", help="Print one line per step instead of JSON")
    parse_cmd.add_argument("--flows", action="store_true", help="Group logs by correlation id and AUTH session, parse each flow")
    parse_cmd.add_argument("--correlation-id", help="Only parse logs with this correlation id")
    parse_cmd.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    parse_cmd.set_defaults(func=_cmd_parse)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
