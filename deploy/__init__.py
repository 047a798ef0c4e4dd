"""
Deploy package for Llama Stack distributions.

This package generates the Docker Compose file that runs a TGI inference
server next to the Llama Stack server.
"""

from .compose import (
    ComposeSettings,
    RestartPolicy,
    build_compose,
    settings_from_env,
    write_compose
)

__all__ = [
    'ComposeSettings',
    'RestartPolicy',
    'build_compose',
    'settings_from_env',
    'write_compose'
]
