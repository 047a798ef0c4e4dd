"""
Utility functions and classes for the Llama Stack distribution toolkit.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from distro.manifest import DistributionManifest

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Configure root logging for the command line tools."""
    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )


class DistributionReport:
    """Class for generating distribution manifest reports."""

    def __init__(self, manifest: DistributionManifest):
        self.manifest = manifest
        self.timestamp = datetime.now()

    def generate_summary_report(self) -> str:
        """Generate a summary report in text format."""
        manifest = self.manifest
        problems = manifest.validate()

        report_lines = [
            "=" * 60,
            f"LLAMA STACK DISTRIBUTION: {manifest.image_name}",
            "=" * 60,
            f"Generated: {self.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            "SUMMARY:",
            f"  Manifest version: {manifest.version}",
            f"  APIs: {len(manifest.apis)}",
            f"  Providers: {sum(len(p) for p in manifest.providers.values())}",
            f"  Models: {len(manifest.models)}",
            f"  Tool groups: {len(manifest.tool_groups)}",
            f"  Server port: {manifest.server.port}",
            ""
        ]

        report_lines.extend(["PROVIDERS:", ""])
        for api in manifest.apis:
            entries = manifest.providers.get(api, [])
            described = ', '.join(f"{p.provider_id} ({p.provider_type})" for p in entries) or 'none'
            report_lines.append(f"  {api}: {described}")
        report_lines.append("")

        if manifest.models:
            report_lines.extend(["MODELS:", ""])
            for model in manifest.models:
                report_lines.append(f"  {model.model_id} [{model.model_type}] via {model.provider_id}")
            report_lines.append("")

        if manifest.tool_groups:
            report_lines.extend(["TOOL GROUPS:", ""])
            for group in manifest.tool_groups:
                report_lines.append(f"  {group.toolgroup_id} via {group.provider_id}")
            report_lines.append("")

        references = manifest.env_references()
        if references:
            report_lines.extend(["ENVIRONMENT:", ""])
            for ref in references:
                status = "required" if ref.required else f"default {ref.default!r}"
                report_lines.append(f"  {ref.name} ({status})")
            report_lines.append("")

        report_lines.append("VALIDATION:")
        if problems:
            report_lines.extend(f"  - {problem}" for problem in problems)
        else:
            report_lines.append("  OK")
        report_lines.append("=" * 60)

        return "\n".join(report_lines)

    def save_report(self, filepath: str):
        """Save report to file."""
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(self.generate_summary_report())

        logger.info(f"Report saved to {filepath}")

    def save_json_report(self, filepath: str):
        """Save the manifest summary as JSON."""
        data = {
            'image_name': self.manifest.image_name,
            'generated': self.timestamp.isoformat(),
            'apis': self.manifest.apis,
            'providers': {
                api: [p.to_dict() for p in entries]
                for api, entries in self.manifest.providers.items()
            },
            'models': [m.to_dict() for m in self.manifest.models],
            'env': [ref.name for ref in self.manifest.env_references()],
            'problems': self.manifest.validate()
        }
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info(f"JSON report saved to {filepath}")


def create_sample_config() -> str:
    """Create a sample configuration YAML file content."""
    sample_config = """
# Llama Stack distribution toolkit configuration

# Llama Stack connection settings
stack_url: "http://localhost:8321"
distribution: "dell"
inference_model: null

# Output settings
output_directory: "distributions"

# Client behaviour (seconds)
client_timeout: 300.0
health_timeout: 120.0
health_interval: 2.0

# Logging
log_level: "INFO"
log_file: null  # Set to filename to log to file
"""
    return sample_config.strip() + "\n"


def setup_distribution_environment(base_dir: str = "."):
    """Set up the working directories and a sample toolkit configuration."""
    base_path = Path(base_dir)

    for directory in ["distributions", "configs", "logs"]:
        dir_path = base_path / directory
        dir_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created directory: {dir_path}")

    config_path = base_path / "configs" / "sample_toolkit_config.yaml"
    if not config_path.exists():
        with open(config_path, 'w') as f:
            f.write(create_sample_config())
        logger.info(f"Created sample configuration: {config_path}")
    return config_path
