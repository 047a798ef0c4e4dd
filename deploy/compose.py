"""
Docker Compose generation for a TGI-backed Llama Stack deployment.

Two services are produced: the text-generation-inference server holding the
GPUs, and the Llama Stack server which starts once TGI reports healthy.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

TGI_SERVICE = 'text-generation-inference'
STACK_SERVICE = 'llamastack'

DEFAULT_TGI_IMAGE = (
    'registry.dell.huggingface.co/enterprise-dell-inference-meta-llama-meta-llama-3.1-8b-instruct'
)
DEFAULT_STACK_IMAGE = 'llamastack/distribution-tgi'
DEFAULT_STACK_PORT = 8321
CONTAINER_RUN_YAML = '/root/my-run.yaml'
SERVER_MODULE = 'llama_stack.distribution.server.server'


@dataclass
class RestartPolicy:
    condition: str = 'on-failure'
    delay: str = '3s'
    max_attempts: int = 5
    window: str = '60s'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'condition': self.condition,
            'delay': self.delay,
            'max_attempts': self.max_attempts,
            'window': self.window,
        }


@dataclass
class ComposeSettings:
    """Settings for the generated compose file."""

    # TGI sidecar
    tgi_image: str = DEFAULT_TGI_IMAGE
    tgi_port: int = 5009
    model_cache: str = '$HOME/.cache/huggingface'
    cuda_visible_devices: str = '0,1,2,3,4'
    num_shard: int = 4
    max_batch_prefill_tokens: int = 32768
    max_input_tokens: int = 8000
    max_total_tokens: int = 8192
    gpu_count: Any = 'all'
    tgi_healthcheck: bool = True
    healthcheck_interval: str = '10s'
    healthcheck_retries: int = 30

    # Stack server
    stack_image: str = DEFAULT_STACK_IMAGE
    stack_port: int = DEFAULT_STACK_PORT
    llama_dir: str = '~/.llama'
    run_yaml: str = './run.yaml'
    startup_delay: int = 60
    restart_policy: RestartPolicy = field(default_factory=RestartPolicy)

    @property
    def uses_named_volume(self) -> bool:
        """A cache that does not start like a path (/ . ~ $) is a named volume."""
        return not self.model_cache.startswith(('/', '.', '~', '$'))


def _tgi_environment(settings: ComposeSettings) -> List[str]:
    return [
        f"CUDA_VISIBLE_DEVICES={settings.cuda_visible_devices}",
        f"NUM_SHARD={settings.num_shard}",
        f"MAX_BATCH_PREFILL_TOKENS={settings.max_batch_prefill_tokens}",
        f"MAX_INPUT_TOKENS={settings.max_input_tokens}",
        f"MAX_TOTAL_TOKENS={settings.max_total_tokens}",
    ]


def stack_entrypoint(settings: ComposeSettings) -> str:
    """Shell entrypoint for the stack server, optionally delayed."""
    command = f"python -m {SERVER_MODULE} --yaml_config {CONTAINER_RUN_YAML}"
    # run.yaml server.port applies unless another port is requested
    if settings.stack_port != DEFAULT_STACK_PORT:
        command = f"{command} --port {settings.stack_port}"
    if settings.startup_delay and settings.startup_delay > 0:
        command = f"sleep {settings.startup_delay}; {command}"
    return f'bash -c "{command}"'


def build_tgi_service(settings: ComposeSettings) -> Dict[str, Any]:
    service: Dict[str, Any] = {
        'image': settings.tgi_image,
        'network_mode': 'host',
        'volumes': [f"{settings.model_cache}:/data"],
        'ports': [f"{settings.tgi_port}:{settings.tgi_port}"],
        'devices': ['nvidia.com/gpu=all'],
        'environment': _tgi_environment(settings),
        'command': [],
        'deploy': {
            'resources': {
                'reservations': {
                    'devices': [{
                        'driver': 'nvidia',
                        'count': settings.gpu_count,
                        'capabilities': ['gpu'],
                    }],
                },
            },
        },
        'runtime': 'nvidia',
    }
    if settings.tgi_healthcheck:
        service['healthcheck'] = {
            'test': ['CMD', 'curl', '-f', f"http://localhost:{settings.tgi_port}/health"],
            'interval': settings.healthcheck_interval,
            'timeout': '5s',
            'retries': settings.healthcheck_retries,
        }
    return service


def build_stack_service(settings: ComposeSettings) -> Dict[str, Any]:
    condition = 'service_healthy' if settings.tgi_healthcheck else 'service_started'
    return {
        'depends_on': {TGI_SERVICE: {'condition': condition}},
        'image': settings.stack_image,
        'network_mode': 'host',
        'volumes': [
            f"{settings.llama_dir}:/root/.llama",
            f"{settings.run_yaml}:{CONTAINER_RUN_YAML}",
        ],
        'ports': [f"{settings.stack_port}:{settings.stack_port}"],
        'entrypoint': stack_entrypoint(settings),
        'restart_policy': settings.restart_policy.to_dict(),
    }


def build_compose(settings: Optional[ComposeSettings] = None) -> Dict[str, Any]:
    """
    Build the compose document.

    Args:
        settings: Compose settings, defaults reproduce the Dell TGI deployment

    Returns:
        Mapping ready to be dumped as compose.yaml
    """
    settings = settings or ComposeSettings()
    compose: Dict[str, Any] = {
        'services': {
            TGI_SERVICE: build_tgi_service(settings),
            STACK_SERVICE: build_stack_service(settings),
        }
    }
    if settings.uses_named_volume:
        compose['volumes'] = {settings.model_cache: {}}
    return compose


def compose_to_yaml(compose: Dict[str, Any]) -> str:
    return yaml.safe_dump(compose, sort_keys=False, default_flow_style=False)


def write_compose(settings: Optional[ComposeSettings], path: str) -> str:
    """Write the compose file and return its path."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(compose_to_yaml(build_compose(settings)))
    logger.info(f"Compose file written to {path}")
    return path


def settings_from_env(env=None) -> ComposeSettings:
    """Build ComposeSettings, overriding defaults from environment variables."""
    env = os.environ if env is None else env
    settings = ComposeSettings()

    settings.tgi_image = env.get('TGI_IMAGE', settings.tgi_image)
    settings.model_cache = env.get('HF_CACHE_DIR', settings.model_cache)
    settings.cuda_visible_devices = env.get('CUDA_VISIBLE_DEVICES', settings.cuda_visible_devices)
    settings.stack_image = env.get('LLAMA_STACK_IMAGE', settings.stack_image)
    settings.run_yaml = env.get('LLAMA_STACK_RUN_YAML', settings.run_yaml)

    for name, attr in (
        ('TGI_PORT', 'tgi_port'),
        ('NUM_SHARD', 'num_shard'),
        ('MAX_INPUT_TOKENS', 'max_input_tokens'),
        ('MAX_TOTAL_TOKENS', 'max_total_tokens'),
        ('LLAMA_STACK_PORT', 'stack_port'),
        ('STACK_STARTUP_DELAY', 'startup_delay'),
    ):
        if env.get(name):
            try:
                setattr(settings, attr, int(env[name]))
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {env[name]!r}") from None

    return settings
