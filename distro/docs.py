"""
Markdown documentation for distribution templates.

Pages are rendered with Jinja2 from ``doc_templates/doc_template.md.j2`` and list
the providers, environment variables, models and tool groups of every run
file a distribution ships.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, PackageLoader

from .config import find_env_references
from .templates import DistributionTemplate

logger = logging.getLogger(__name__)

DOC_TEMPLATE = 'doc_template.md.j2'


def _environment() -> Environment:
    env = Environment(
        loader=PackageLoader('distro', 'doc_templates'),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters['wrap_code'] = lambda value: f"`{value}`"
    return env


def collect_env_vars(template: DistributionTemplate) -> List[Dict[str, Any]]:
    """
    Merge documented variables with those referenced by the run files.

    Documented variables come first in declaration order, followed by any
    variable only found in a run file.
    """
    references = {}
    for run_file in template.run_variants:
        for ref in find_env_references(template.run_config(run_file).to_dict()):
            references.setdefault(ref.name, ref)

    env_vars = []
    for name, (example, description) in template.env_vars.items():
        ref = references.get(name)
        env_vars.append({
            'name': name,
            'description': description,
            'default': example if ref is None or ref.default is None else ref.default,
            'required': False,
        })

    documented = set(template.env_vars)
    for name, ref in references.items():
        if name in documented:
            continue
        env_vars.append({
            'name': name,
            'description': f"Used by {', '.join(ref.paths)}",
            'default': ref.default,
            'required': ref.required,
        })
    return env_vars


def render_distribution_doc(template: DistributionTemplate) -> str:
    """Render the Markdown page for a distribution template."""
    default_manifest = template.run_config()
    providers_table = [
        (api, [p.provider_type for p in default_manifest.providers[api]])
        for api in default_manifest.apis
    ]
    models_by_run_file = {
        run_file: template.run_config(run_file).models for run_file in template.run_variants
    }
    required_env = [
        ref.name for ref in find_env_references(default_manifest.to_dict()) if ref.required
    ]

    page = _environment().get_template(DOC_TEMPLATE)
    return page.render(
        name=template.name,
        description=template.description,
        docker_image=template.docker_image,
        providers_table=providers_table,
        env_vars=collect_env_vars(template),
        models_by_run_file=models_by_run_file,
        tool_groups=default_manifest.tool_groups,
        required_env=required_env,
        port=template.server_port,
    )


def write_distribution_doc(template: DistributionTemplate, path: str) -> str:
    content = render_distribution_doc(template)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)
    logger.info(f"Documentation for '{template.name}' written to {path}")
    return path
