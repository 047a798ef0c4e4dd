"""
Configuration settings for the Llama Stack distribution toolkit.
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional


@dataclass
class ToolkitConfig:
    """Configuration class for toolkit settings."""

    # Llama Stack settings
    stack_url: str = "http://localhost:8321"
    distribution: str = "dell"
    inference_model: Optional[str] = None

    # Output settings
    output_directory: str = "distributions"

    # Client behaviour
    client_timeout: float = 300.0
    health_timeout: float = 120.0
    health_interval: float = 2.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_yaml(cls, yaml_file: str) -> 'ToolkitConfig':
        """Load configuration from YAML file."""
        import yaml

        with open(yaml_file, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'ToolkitConfig':
        """Load configuration from environment variables."""
        config = cls()

        # Override with environment variables if available
        config.stack_url = os.getenv('LLAMA_STACK_URL', config.stack_url)
        config.distribution = os.getenv('LLAMA_STACK_DISTRIBUTION', config.distribution)
        config.inference_model = os.getenv('INFERENCE_MODEL', config.inference_model)
        config.output_directory = os.getenv('LLAMA_STACK_OUTPUT_DIR', config.output_directory)

        if os.getenv('LLAMA_STACK_CLIENT_TIMEOUT'):
            config.client_timeout = float(os.getenv('LLAMA_STACK_CLIENT_TIMEOUT'))

        config.log_level = os.getenv('LOG_LEVEL', config.log_level)
        config.log_file = os.getenv('LOG_FILE', config.log_file)

        return config

    def save_yaml(self, yaml_file: str):
        """Save configuration to YAML file."""
        import yaml

        with open(yaml_file, 'w') as f:
            yaml.dump(asdict(self), f, default_flow_style=False, indent=2)

    def create_output_directory(self):
        """Create output directory if it doesn't exist."""
        Path(self.output_directory).mkdir(parents=True, exist_ok=True)

    def get_output_file_path(self, filename: str) -> str:
        """Get full path for output file."""
        self.create_output_directory()
        return os.path.join(self.output_directory, filename)


# Default configurations for different scenarios
DEFAULT_CONFIGS = {
    'development': ToolkitConfig(
        stack_url="http://localhost:8321",
        log_level="DEBUG"
    ),

    'ci': ToolkitConfig(
        stack_url="http://localhost:8321",
        client_timeout=300.0,
        health_timeout=300.0,
        log_level="INFO"
    ),

    'production': ToolkitConfig(
        stack_url="http://llama-stack:8321",
        health_timeout=600.0,
        health_interval=5.0,
        log_level="INFO"
    )
}


def get_config(config_name: str = 'development') -> ToolkitConfig:
    """Get a predefined configuration."""
    if config_name in DEFAULT_CONFIGS:
        return DEFAULT_CONFIGS[config_name]
    else:
        raise ValueError(f"Unknown configuration: {config_name}. Available: {list(DEFAULT_CONFIGS.keys())}")


def load_config_from_file(config_file: str) -> ToolkitConfig:
    """Load configuration from file (YAML or environment)."""
    if config_file.endswith('.yaml') or config_file.endswith('.yml'):
        return ToolkitConfig.from_yaml(config_file)
    else:
        # Assume environment-based configuration
        return ToolkitConfig.from_env()
