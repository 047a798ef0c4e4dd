"""
Built-in distribution templates.

A template declares which provider serves each API and which resources are
registered at startup. ``run_config()`` turns it into a DistributionManifest
whose deployment-specific values remain ``${env.*}`` placeholders.
"""

import copy
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .manifest import (
    DEFAULT_SERVER_PORT,
    DistributionManifest,
    ModelSpec,
    ProviderSpec,
    ServerSpec,
    ShieldSpec,
    StoreSpec,
    ToolGroupSpec,
)

DEFAULT_RUN_FILE = 'run.yaml'


def store_dir(name: str) -> str:
    return f"${{env.SQLITE_STORE_DIR:=~/.llama/distributions/{name}}}"


def sqlite_store(name: str, filename: str) -> Dict[str, str]:
    return {'type': 'sqlite', 'db_path': f"{store_dir(name)}/{filename}"}


@dataclass
class RunVariant:
    """Differences between one run file of a template and the template defaults."""

    provider_overrides: Dict[str, List[ProviderSpec]] = field(default_factory=dict)
    models: Optional[List[ModelSpec]] = None
    shields: List[ShieldSpec] = field(default_factory=list)
    tool_groups: Optional[List[ToolGroupSpec]] = None


@dataclass
class DistributionTemplate:
    """A named bundle of provider configuration."""

    name: str
    description: str
    docker_image: str
    providers: Dict[str, List[ProviderSpec]]
    models: List[ModelSpec] = field(default_factory=list)
    tool_groups: List[ToolGroupSpec] = field(default_factory=list)
    run_variants: Dict[str, RunVariant] = field(default_factory=lambda: {DEFAULT_RUN_FILE: RunVariant()})
    # name -> (example value, description), rendered in the docs
    env_vars: Dict[str, Tuple[str, str]] = field(default_factory=dict)
    server_port: int = DEFAULT_SERVER_PORT

    @property
    def apis(self) -> List[str]:
        return sorted(self.providers)

    def run_config(self, run_file: str = DEFAULT_RUN_FILE) -> DistributionManifest:
        """
        Build the manifest for one of the template's run files.

        Args:
            run_file: Name of the run file, e.g. ``run.yaml``

        Returns:
            DistributionManifest with env placeholders left in place
        """
        if run_file not in self.run_variants:
            raise ValueError(
                f"Distribution '{self.name}' has no run file {run_file}. "
                f"Available: {list(self.run_variants)}"
            )
        variant = self.run_variants[run_file]

        providers = copy.deepcopy(self.providers)
        providers.update(copy.deepcopy(variant.provider_overrides))
        models = variant.models if variant.models is not None else self.models
        tool_groups = variant.tool_groups if variant.tool_groups is not None else self.tool_groups

        return DistributionManifest(
            image_name=self.name,
            version=2,
            apis=sorted(providers),
            providers=providers,
            metadata_store=StoreSpec.from_dict(sqlite_store(self.name, 'registry.db')),
            inference_store=StoreSpec.from_dict(sqlite_store(self.name, 'inference_store.db')),
            models=copy.deepcopy(models),
            shields=copy.deepcopy(variant.shields),
            tool_groups=copy.deepcopy(tool_groups),
            server=ServerSpec(port=self.server_port),
        )


def _dell_template() -> DistributionTemplate:
    name = 'dell'
    tgi = ProviderSpec('tgi0', 'remote::tgi', {'url': '${env.DEH_URL}'})
    embedding_provider = ProviderSpec('sentence-transformers', 'inline::sentence-transformers')

    providers = {
        'inference': [tgi, embedding_provider],
        'vector_io': [ProviderSpec('chromadb', 'remote::chromadb', {'url': '${env.CHROMA_URL}'})],
        'safety': [ProviderSpec('llama-guard', 'inline::llama-guard', {'excluded_categories': []})],
        'agents': [ProviderSpec('meta-reference', 'inline::meta-reference', {
            'persistence_store': sqlite_store(name, 'agents_store.db'),
            'responses_store': sqlite_store(name, 'responses_store.db'),
        })],
        'telemetry': [ProviderSpec('meta-reference', 'inline::meta-reference', {
            'service_name': '${env.OTEL_SERVICE_NAME:=\u200b}',
            'sinks': '${env.TELEMETRY_SINKS:=console,sqlite}',
            'sqlite_db_path': f"{store_dir(name)}/trace_store.db",
            'otel_exporter_otlp_endpoint': '${env.OTEL_EXPORTER_OTLP_ENDPOINT:=}',
        })],
        'eval': [ProviderSpec('meta-reference', 'inline::meta-reference', {
            'kvstore': sqlite_store(name, 'meta_reference_eval.db'),
        })],
        'datasetio': [
            ProviderSpec('huggingface', 'remote::huggingface', {
                'kvstore': sqlite_store(name, 'huggingface_datasetio.db'),
            }),
            ProviderSpec('localfs', 'inline::localfs', {
                'kvstore': sqlite_store(name, 'localfs_datasetio.db'),
            }),
        ],
        'scoring': [
            ProviderSpec('basic', 'inline::basic'),
            ProviderSpec('llm-as-judge', 'inline::llm-as-judge'),
            ProviderSpec('braintrust', 'inline::braintrust', {'openai_api_key': '${env.OPENAI_API_KEY:=}'}),
        ],
        'tool_runtime': [
            ProviderSpec('brave-search', 'remote::brave-search', {
                'api_key': '${env.BRAVE_SEARCH_API_KEY:=}',
                'max_results': 3,
            }),
            ProviderSpec('tavily-search', 'remote::tavily-search', {
                'api_key': '${env.TAVILY_SEARCH_API_KEY:=}',
                'max_results': 3,
            }),
            ProviderSpec('rag-runtime', 'inline::rag-runtime'),
        ],
    }

    inference_model = ModelSpec(model_id='${env.INFERENCE_MODEL}', provider_id='tgi0')
    embedding_model = ModelSpec(
        model_id='all-MiniLM-L6-v2',
        provider_id='sentence-transformers',
        model_type='embedding',
        metadata={'embedding_dimension': 384},
    )
    safety_model = ModelSpec(model_id='${env.SAFETY_MODEL}', provider_id='tgi1')

    with_safety = RunVariant(
        provider_overrides={
            'inference': [
                tgi,
                ProviderSpec('tgi1', 'remote::tgi', {'url': '${env.DEH_SAFETY_URL}'}),
                embedding_provider,
            ],
        },
        models=[inference_model, safety_model, embedding_model],
        shields=[ShieldSpec(shield_id='${env.SAFETY_MODEL}', provider_id='llama-guard')],
    )

    return DistributionTemplate(
        name=name,
        description='Dell\'s distribution of Llama Stack. TGI inference via Dell\'s custom container',
        docker_image='llamastack/distribution-tgi',
        providers=providers,
        models=[inference_model, embedding_model],
        tool_groups=[
            ToolGroupSpec(toolgroup_id='builtin::websearch', provider_id='brave-search'),
            ToolGroupSpec(toolgroup_id='builtin::rag', provider_id='rag-runtime'),
        ],
        run_variants={
            DEFAULT_RUN_FILE: RunVariant(),
            'run-with-safety.yaml': with_safety,
        },
        env_vars={
            'LLAMA_STACK_PORT': ('8321', 'Port for the Llama Stack distribution server'),
            'HF_TOKEN': ('', 'Hugging Face API token'),
            'DEH_URL': ('http://0.0.0.0:8181', 'URL for the Dell inference server'),
            'DEH_SAFETY_URL': ('http://0.0.0.0:8282', 'URL for the Dell safety inference server'),
            'CHROMA_URL': ('http://localhost:6601', 'URL for the Chroma server'),
            'INFERENCE_MODEL': ('meta-llama/Llama-3.2-3B-Instruct', 'Inference model loaded into the TGI server'),
            'SAFETY_MODEL': ('meta-llama/Llama-Guard-3-1B', 'Name of the safety (Llama-Guard) model to use'),
        },
    )


_TEMPLATES: Dict[str, Callable[[], DistributionTemplate]] = {
    'dell': _dell_template,
}


def list_distributions() -> List[str]:
    return sorted(_TEMPLATES)


def get_distribution_template(name: str) -> DistributionTemplate:
    """Get a built-in distribution template by name."""
    if name not in _TEMPLATES:
        raise ValueError(f"Unknown distribution: {name}. Available: {list_distributions()}")
    return _TEMPLATES[name]()
