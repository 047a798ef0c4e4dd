#!/usr/bin/env python3
"""
Main entry point for the distro package.

Generate, validate, resolve and document Llama Stack distribution manifests.
"""

import argparse
import logging
import sys

from stack_utils import DistributionReport, setup_logging

from .config import find_env_references, missing_env_vars
from .docs import write_distribution_doc
from .errors import EnvSubstitutionError, ManifestError
from .manifest import DistributionManifest, load_manifest
from .templates import DEFAULT_RUN_FILE, get_distribution_template, list_distributions
from .yaml_generator import generate_all_run_yamls, generate_run_yaml

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m distro',
        description="Generate and check Llama Stack distribution manifests"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    gen_parser = subparsers.add_parser('generate', help='Generate run.yaml from a built-in distribution')
    gen_parser.add_argument("--distribution", "-d", default="dell", help="Distribution name (default: dell)")
    gen_parser.add_argument("--output", "-o", default="run.yaml", help="Output file (default: run.yaml)")
    gen_parser.add_argument("--run-file", default=DEFAULT_RUN_FILE,
                            help="Which run file of the distribution to generate")
    gen_parser.add_argument("--all", action="store_true",
                            help="Generate every run file into --output-dir")
    gen_parser.add_argument("--output-dir", default=".", help="Directory used with --all")

    val_parser = subparsers.add_parser('validate', help='Validate a run.yaml file')
    val_parser.add_argument("manifest", help="Path to run.yaml")
    val_parser.add_argument("--resolve", action="store_true",
                            help="Substitute environment variables before validating")

    res_parser = subparsers.add_parser('resolve', help='Substitute ${env.*} placeholders')
    res_parser.add_argument("manifest", help="Path to run.yaml")
    res_parser.add_argument("--output", "-o", help="Write the resolved manifest here instead of stdout")

    env_parser = subparsers.add_parser('env', help='List environment variables a manifest uses')
    env_parser.add_argument("manifest", help="Path to run.yaml")

    docs_parser = subparsers.add_parser('docs', help='Render Markdown docs for a distribution')
    docs_parser.add_argument("--distribution", "-d", default="dell", help="Distribution name (default: dell)")
    docs_parser.add_argument("--output", "-o", help="Output Markdown file (default: <name>.md)")

    report_parser = subparsers.add_parser('report', help='Print a summary of a run.yaml file')
    report_parser.add_argument("manifest", help="Path to run.yaml")

    subparsers.add_parser('list', help='List built-in distributions')
    return parser


def handle_generate_command(args) -> int:
    if args.all:
        written = generate_all_run_yamls(args.distribution, args.output_dir)
        for path in written:
            print(f"Generated {path}")
    else:
        generate_run_yaml(
            distribution=args.distribution,
            output_file=args.output,
            run_file=args.run_file
        )
        print(f"Generated {args.output}")
    return 0


def handle_validate_command(args) -> int:
    manifest = load_manifest(args.manifest, resolve=args.resolve)
    problems = manifest.validate()
    if problems:
        print(f"❌ {args.manifest}: {len(problems)} problem(s)")
        for problem in problems:
            print(f"  - {problem}")
        return 1
    print(f"✅ {args.manifest} is valid")
    return 0


def handle_resolve_command(args) -> int:
    manifest = DistributionManifest.from_yaml(args.manifest)
    missing = missing_env_vars(manifest.to_dict())
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        return 1
    resolved = manifest.resolve()
    if args.output:
        resolved.save_yaml(args.output)
    else:
        print(resolved.to_yaml(), end='')
    return 0


def handle_env_command(args) -> int:
    manifest = DistributionManifest.from_yaml(args.manifest)
    for ref in find_env_references(manifest.to_dict()):
        if ref.required:
            detail = "required"
        elif ref.conditional:
            detail = "conditional"
        else:
            detail = f"default: {ref.default!r}"
        print(f"{ref.name}\t{detail}\t{', '.join(ref.paths)}")
    return 0


def handle_docs_command(args) -> int:
    template = get_distribution_template(args.distribution)
    output = args.output or f"{template.name}.md"
    write_distribution_doc(template, output)
    print(f"Documentation written to {output}")
    return 0


def handle_report_command(args) -> int:
    manifest = DistributionManifest.from_yaml(args.manifest)
    print(DistributionReport(manifest).generate_summary_report())
    return 0


HANDLERS = {
    'generate': handle_generate_command,
    'validate': handle_validate_command,
    'resolve': handle_resolve_command,
    'env': handle_env_command,
    'docs': handle_docs_command,
    'report': handle_report_command,
}


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == 'list':
        for name in list_distributions():
            print(name)
        return 0

    try:
        return HANDLERS[args.command](args)
    except FileNotFoundError as e:
        logger.error(f"File not found: {e.filename}")
    except (ManifestError, EnvSubstitutionError, ValueError) as e:
        logger.error(str(e))
    return 1


if __name__ == '__main__':
    sys.exit(main())
