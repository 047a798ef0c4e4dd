#!/usr/bin/env python3
"""
Main entry point for the testmatrix package.

Used from CI to discover test suites, expand the job matrix and print the
pytest invocation of a single job.
"""

import argparse
import json
import logging
import shlex
import sys

from stack_utils import setup_logging

from .matrix import (
    IntegrationRun,
    MatrixEntry,
    WorkflowEvent,
    build_matrix,
    discover_test_types,
    should_run,
    write_github_output
)

logger = logging.getLogger(__name__)


def _event_from_args(args) -> WorkflowEvent:
    event = WorkflowEvent.from_github_env()
    if args.event:
        event.event_name = args.event
    if args.schedule:
        event.schedule = args.schedule
    if args.provider:
        event.inputs['test-provider'] = args.provider
    if args.all_client_versions:
        event.inputs['test-all-client-versions'] = 'true'
    return event


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m testmatrix',
        description="Integration test matrix helpers"
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    discover_parser = subparsers.add_parser('discover', help='List test suites as a JSON array')
    discover_parser.add_argument("--root", default="tests/integration", help="Integration test root")
    discover_parser.add_argument("--output-name", default="test-type", help="GitHub output name")

    expand_parser = subparsers.add_parser('expand', help='Print the expanded job matrix')
    expand_parser.add_argument("--root", default="tests/integration", help="Integration test root")
    expand_parser.add_argument("--event", help="Event name (default: $GITHUB_EVENT_NAME)")
    expand_parser.add_argument("--schedule", help="Cron expression of the triggering schedule")
    expand_parser.add_argument("--provider", help="Provider under test")
    expand_parser.add_argument("--all-client-versions", action="store_true",
                               help="Test both published and latest clients")

    command_parser = subparsers.add_parser('command', help='Print the pytest command of one job')
    command_parser.add_argument("--test-type", required=True)
    command_parser.add_argument("--client-type", choices=['library', 'server'], default='library')
    command_parser.add_argument("--provider", default="ollama")
    command_parser.add_argument("--python-version", default="3.12")
    command_parser.add_argument("--client-version", default="latest")

    run_parser = subparsers.add_parser('should-run', help='Exit 0 when the workflow triggers apply')
    run_parser.add_argument("--event", help="Event name (default: $GITHUB_EVENT_NAME)")
    run_parser.add_argument("--schedule", help=argparse.SUPPRESS)
    run_parser.add_argument("--provider", help=argparse.SUPPRESS)
    run_parser.add_argument("--all-client-versions", action="store_true", help=argparse.SUPPRESS)
    run_parser.add_argument("--branch", help="Target branch")
    run_parser.add_argument("--changed", nargs="*", default=[], help="Changed file paths")
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == 'discover':
        write_github_output(args.output_name, discover_test_types(args.root))
        return 0

    if args.command == 'expand':
        entries = build_matrix(discover_test_types(args.root), _event_from_args(args))
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0

    if args.command == 'command':
        entry = MatrixEntry(
            test_type=args.test_type,
            client_type=args.client_type,
            provider=args.provider,
            python_version=args.python_version,
            client_version=args.client_version
        )
        run = IntegrationRun.from_entry(entry)
        for name, value in run.env.items():
            print(f"export {name}={shlex.quote(value)}")
        print(f"{shlex.join(run.pytest_args())} | tee {run.log_file}")
        return 0

    if args.command == 'should-run':
        return 0 if should_run(_event_from_args(args), args.branch, args.changed) else 1

    return 1


if __name__ == '__main__':
    sys.exit(main())
