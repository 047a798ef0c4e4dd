"""
Distro package for Llama Stack distributions.

This package contains utilities for loading, validating, resolving and
generating distribution manifests (run.yaml) and their documentation.
"""

from .config import (
    EnvReference,
    find_env_references,
    missing_env_vars,
    replace_env_vars
)
from .docs import render_distribution_doc, write_distribution_doc
from .errors import EnvSubstitutionError, ManifestError, ManifestValidationError
from .manifest import (
    DistributionManifest,
    ModelSpec,
    ProviderSpec,
    StoreSpec,
    ToolGroupSpec,
    load_manifest,
    resolve_manifest
)
from .templates import DistributionTemplate, get_distribution_template, list_distributions
from .yaml_generator import build_run_config, generate_run_yaml

__all__ = [
    'EnvReference',
    'find_env_references',
    'missing_env_vars',
    'replace_env_vars',
    'render_distribution_doc',
    'write_distribution_doc',
    'EnvSubstitutionError',
    'ManifestError',
    'ManifestValidationError',
    'DistributionManifest',
    'ModelSpec',
    'ProviderSpec',
    'StoreSpec',
    'ToolGroupSpec',
    'load_manifest',
    'resolve_manifest',
    'DistributionTemplate',
    'get_distribution_template',
    'list_distributions',
    'build_run_config',
    'generate_run_yaml'
]
