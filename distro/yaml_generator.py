"""
run.yaml generation for Llama Stack distributions.

This module builds a distribution's manifest from its built-in template,
validates it and writes it out, keeping a one-time backup of any run file
it replaces.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from .manifest import DistributionManifest
from .templates import DEFAULT_RUN_FILE, get_distribution_template

logger = logging.getLogger(__name__)


def build_run_config(distribution: str = 'dell', run_file: str = DEFAULT_RUN_FILE) -> DistributionManifest:
    """Build (but do not write) the manifest for a distribution's run file."""
    template = get_distribution_template(distribution)
    return template.run_config(run_file)


def generate_run_yaml(
    distribution: str = 'dell',
    output_file: str = 'run.yaml',
    backup_file: Optional[str] = 'run.yaml.orig',
    run_file: str = DEFAULT_RUN_FILE,
    validate: bool = True
) -> DistributionManifest:
    """
    Generate run.yaml for a built-in distribution.

    Args:
        distribution: Name of the built-in distribution template
        output_file: Path to the output YAML file
        backup_file: Path to create backup of existing output file, None to skip
        run_file: Which of the template's run files to generate
        validate: Raise ManifestValidationError if the manifest is inconsistent

    Returns:
        The manifest that was written
    """
    manifest = build_run_config(distribution, run_file)
    if validate:
        manifest.check()

    # Create backup of existing run.yaml if it exists and backup doesn't exist yet
    if backup_file and os.path.exists(output_file) and not os.path.exists(backup_file):
        logger.info(f"Creating backup: {backup_file}")
        shutil.copyfile(output_file, backup_file)

    parent = Path(output_file).parent
    parent.mkdir(parents=True, exist_ok=True)
    manifest.save_yaml(output_file)
    logger.info(f"Successfully generated {output_file} for distribution '{distribution}' ({run_file})")
    return manifest


def generate_all_run_yamls(distribution: str = 'dell', output_dir: str = '.') -> Dict[str, DistributionManifest]:
    """Write every run file of a distribution into ``output_dir``."""
    template = get_distribution_template(distribution)
    written = {}
    for run_file in template.run_variants:
        path = os.path.join(output_dir, run_file)
        written[path] = generate_run_yaml(
            distribution=distribution,
            output_file=path,
            backup_file=None,
            run_file=run_file,
        )
    return written


def run_files(distribution: str = 'dell') -> List[str]:
    return list(get_distribution_template(distribution).run_variants)
