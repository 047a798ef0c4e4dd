#!/usr/bin/env python3
"""
Main entry point for the deploy package.

Writes compose.yaml for the TGI sidecar and the Llama Stack server.
"""

import argparse
import logging
import sys

from stack_utils import setup_logging

from .compose import write_compose, settings_from_env

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='python -m deploy',
        description="Generate a Docker Compose file for a TGI-backed Llama Stack"
    )
    parser.add_argument("--output", "-o", default="compose.yaml", help="Output file (default: compose.yaml)")
    parser.add_argument("--tgi-image", help="TGI container image")
    parser.add_argument("--stack-image", help="Llama Stack container image")
    parser.add_argument("--model-cache", help="Host path or volume name mounted at /data in TGI")
    parser.add_argument("--run-yaml", help="run.yaml mounted into the stack container")
    parser.add_argument("--stack-port", type=int, help="Llama Stack server port")
    parser.add_argument("--startup-delay", type=int,
                        help="Seconds to sleep before starting the stack server (0 disables)")
    parser.add_argument("--no-healthcheck", action="store_true",
                        help="Do not add a healthcheck to the TGI service")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        settings = settings_from_env()
    except ValueError as e:
        logger.error(str(e))
        return 1

    if args.tgi_image:
        settings.tgi_image = args.tgi_image
    if args.stack_image:
        settings.stack_image = args.stack_image
    if args.model_cache:
        settings.model_cache = args.model_cache
    if args.run_yaml:
        settings.run_yaml = args.run_yaml
    if args.stack_port is not None:
        settings.stack_port = args.stack_port
    if args.startup_delay is not None:
        settings.startup_delay = args.startup_delay
    if args.no_healthcheck:
        settings.tgi_healthcheck = False

    try:
        write_compose(settings, args.output)
    except OSError as e:
        logger.error(f"Error writing output file: {e}")
        return 1
    print(f"Compose file written to {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
