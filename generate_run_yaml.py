#!/usr/bin/env python3
"""
Generate run.yaml (and optionally its docs and compose.yaml) for a distribution.

Environment variables:
- LLAMA_STACK_DISTRIBUTION: Built-in distribution to generate (optional, defaults to dell)
- LLAMA_STACK_OUTPUT_DIR: Directory the files are written to (optional, defaults to distributions)
- LOG_LEVEL: Logging level (optional, defaults to INFO)
"""

import argparse
import logging
import os
import sys

from deploy.compose import settings_from_env, write_compose
from distro.docs import write_distribution_doc
from distro.templates import get_distribution_template
from distro.yaml_generator import generate_all_run_yamls
from stack_config import ToolkitConfig
from stack_utils import setup_logging

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    """Write every run file of the distribution, plus docs and compose file on request."""
    config = ToolkitConfig.from_env()

    parser = argparse.ArgumentParser(description="Generate Llama Stack distribution files")
    parser.add_argument("--distribution", "-d", default=config.distribution)
    parser.add_argument("--output-dir", "-o", default=config.output_directory)
    parser.add_argument("--docs", action="store_true", help="Also write <distribution>.md")
    parser.add_argument("--compose", action="store_true", help="Also write compose.yaml")
    args = parser.parse_args(argv)

    setup_logging(config.log_level, config.log_file)
    output_dir = os.path.join(args.output_dir, args.distribution)

    try:
        written = list(generate_all_run_yamls(args.distribution, output_dir))
        if args.docs:
            template = get_distribution_template(args.distribution)
            written.append(write_distribution_doc(template, os.path.join(output_dir, f"{template.name}.md")))
        if args.compose:
            written.append(write_compose(settings_from_env(), os.path.join(output_dir, 'compose.yaml')))
    except ValueError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"Error writing output file: {e}")
        return 1

    for path in written:
        print(f"Generated {path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
