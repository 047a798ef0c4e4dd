"""
Data model for Llama Stack distribution manifests (run.yaml).

A manifest maps each API category to the providers that implement it and
registers the resources (models, shields, vector DBs, ...) served through
those providers. The classes here load, validate and write that document;
nothing in this module instantiates a provider.
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .config import find_env_references, has_placeholder, replace_env_vars
from .errors import ManifestError, ManifestValidationError

logger = logging.getLogger(__name__)

KNOWN_APIS = (
    'agents',
    'batches',
    'datasetio',
    'eval',
    'files',
    'inference',
    'post_training',
    'safety',
    'scoring',
    'telemetry',
    'tool_runtime',
    'vector_io',
)

PROVIDER_TYPE_PREFIXES = ('remote::', 'inline::')

MODEL_TYPES = ('llm', 'embedding')

DEFAULT_SERVER_PORT = 8321


@dataclass
class ProviderSpec:
    """One provider record: ``{provider_id, provider_type, config}``."""

    provider_id: str
    provider_type: str
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, api: str = '') -> 'ProviderSpec':
        if not isinstance(data, dict):
            raise ManifestError(f"Provider entry under '{api}' must be a mapping, got {type(data).__name__}")
        missing = [key for key in ('provider_id', 'provider_type') if not data.get(key)]
        if missing:
            raise ManifestError(f"Provider entry under '{api}' is missing {', '.join(missing)}")
        for key in ('provider_id', 'provider_type'):
            if not isinstance(data[key], str):
                raise ManifestError(
                    f"Provider entry under '{api}' has a non-string {key}: {data[key]!r}"
                )
        return cls(
            provider_id=data['provider_id'],
            provider_type=data['provider_type'],
            config=dict(data.get('config') or {}),
        )

    @property
    def is_remote(self) -> bool:
        return self.provider_type.startswith('remote::')

    @property
    def is_inline(self) -> bool:
        return self.provider_type.startswith('inline::')

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'provider_id': self.provider_id,
            'provider_type': self.provider_type,
        }
        if self.config:
            data['config'] = self.config
        return data


@dataclass
class StoreSpec:
    """A persistence backend, e.g. ``{type: sqlite, db_path: ...}``."""

    type: str = 'sqlite'
    db_path: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['StoreSpec']:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ManifestError(f"Store must be a mapping, got {type(data).__name__}")
        extra = {k: v for k, v in data.items() if k not in ('type', 'db_path')}
        return cls(type=data.get('type', 'sqlite'), db_path=data.get('db_path'), extra=extra)

    def expanded_path(self) -> Optional[Path]:
        """The sqlite path with ``~`` expanded; None for placeholder or missing paths."""
        if not self.db_path or has_placeholder(self.db_path):
            return None
        return Path(self.db_path).expanduser()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.type}
        if self.db_path is not None:
            data['db_path'] = self.db_path
        data.update(self.extra)
        return data


class _Resource:
    """Shared loading/dumping for the registered-resource lists."""

    kind = 'resource'
    id_field = ''
    order: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any):
        if not isinstance(data, dict):
            raise ManifestError(f"{cls.kind} entry must be a mapping, got {type(data).__name__}")
        if not data.get(cls.id_field):
            raise ManifestError(f"{cls.kind} entry is missing {cls.id_field}")
        if isinstance(data[cls.id_field], (dict, list)):
            raise ManifestError(f"{cls.kind} {cls.id_field} must be a scalar, got {data[cls.id_field]!r}")
        names = {f.name for f in fields(cls) if f.name != 'extra'}
        kwargs = {k: v for k, v in data.items() if k in names}
        extra = {k: v for k, v in data.items() if k not in names}
        return cls(extra=extra, **kwargs)

    @property
    def identifier(self) -> str:
        return getattr(self, self.id_field)

    def to_dict(self) -> Dict[str, Any]:
        names = self.order or tuple(f.name for f in fields(self) if f.name != 'extra')
        data = {}
        for name in names:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        data.update(self.extra)
        return data


@dataclass
class ModelSpec(_Resource):
    model_id: str
    provider_id: Optional[str] = None
    model_type: str = 'llm'
    provider_model_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = 'model'
    id_field = 'model_id'
    order = ('metadata', 'model_id', 'provider_id', 'provider_model_id', 'model_type')


@dataclass
class ShieldSpec(_Resource):
    shield_id: str
    provider_id: Optional[str] = None
    provider_shield_id: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = 'shield'
    id_field = 'shield_id'


@dataclass
class VectorDBSpec(_Resource):
    vector_db_id: str
    embedding_model: Optional[str] = None
    embedding_dimension: Optional[int] = None
    provider_id: Optional[str] = None
    provider_vector_db_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = 'vector_db'
    id_field = 'vector_db_id'


@dataclass
class DatasetSpec(_Resource):
    dataset_id: str
    provider_id: Optional[str] = None
    purpose: Optional[str] = None
    source: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = 'dataset'
    id_field = 'dataset_id'


@dataclass
class ScoringFnSpec(_Resource):
    scoring_fn_id: str
    provider_id: Optional[str] = None
    description: Optional[str] = None
    return_type: Optional[Dict[str, Any]] = None
    params: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = 'scoring_fn'
    id_field = 'scoring_fn_id'


@dataclass
class BenchmarkSpec(_Resource):
    benchmark_id: str
    dataset_id: Optional[str] = None
    scoring_functions: List[str] = field(default_factory=list)
    provider_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = 'benchmark'
    id_field = 'benchmark_id'


@dataclass
class ToolGroupSpec(_Resource):
    toolgroup_id: str
    provider_id: Optional[str] = None
    args: Optional[Dict[str, Any]] = None
    mcp_endpoint: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    kind = 'tool_group'
    id_field = 'toolgroup_id'


@dataclass
class ServerSpec:
    port: Any = DEFAULT_SERVER_PORT
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ServerSpec':
        data = data or {}
        if not isinstance(data, dict):
            raise ManifestError(f"'server' must be a mapping, got {type(data).__name__}")
        extra = {k: v for k, v in data.items() if k != 'port'}
        return cls(port=data.get('port', DEFAULT_SERVER_PORT), extra=extra)

    def to_dict(self) -> Dict[str, Any]:
        data = {'port': self.port}
        data.update(self.extra)
        return data


# (manifest key, resource class, API whose providers serve it)
RESOURCE_SECTIONS = (
    ('models', ModelSpec, 'inference'),
    ('shields', ShieldSpec, 'safety'),
    ('vector_dbs', VectorDBSpec, 'vector_io'),
    ('datasets', DatasetSpec, 'datasetio'),
    ('scoring_fns', ScoringFnSpec, 'scoring'),
    ('benchmarks', BenchmarkSpec, 'eval'),
    ('tool_groups', ToolGroupSpec, 'tool_runtime'),
)

SCHEMA_ORDER = (
    'version', 'image_name', 'apis', 'providers', 'metadata_store', 'inference_store',
    'models', 'shields', 'vector_dbs', 'datasets', 'scoring_fns', 'benchmarks',
    'tool_groups', 'server',
)


@dataclass
class DistributionManifest:
    """A complete distribution run configuration."""

    image_name: str = ''
    version: Any = 2
    apis: List[str] = field(default_factory=list)
    providers: Dict[str, List[ProviderSpec]] = field(default_factory=dict)
    metadata_store: Optional[StoreSpec] = None
    inference_store: Optional[StoreSpec] = None
    models: List[ModelSpec] = field(default_factory=list)
    shields: List[ShieldSpec] = field(default_factory=list)
    vector_dbs: List[VectorDBSpec] = field(default_factory=list)
    datasets: List[DatasetSpec] = field(default_factory=list)
    scoring_fns: List[ScoringFnSpec] = field(default_factory=list)
    benchmarks: List[BenchmarkSpec] = field(default_factory=list)
    tool_groups: List[ToolGroupSpec] = field(default_factory=list)
    server: ServerSpec = field(default_factory=ServerSpec)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> 'DistributionManifest':
        """Build a manifest from a parsed run.yaml mapping."""
        if not isinstance(data, dict):
            raise ManifestError(f"Manifest must be a mapping, got {type(data).__name__}")

        apis = data.get('apis') or []
        if not isinstance(apis, list):
            raise ManifestError(f"'apis' must be a list of API names, got {type(apis).__name__}")
        for api in apis:
            if not isinstance(api, str):
                raise ManifestError(f"'apis' entries must be API names, got {api!r}")

        raw_providers = data.get('providers') or {}
        if not isinstance(raw_providers, dict):
            raise ManifestError("'providers' must map API names to provider lists")
        providers = {}
        for api, entries in raw_providers.items():
            if not isinstance(entries, list):
                raise ManifestError(f"Providers for '{api}' must be a list")
            providers[api] = [ProviderSpec.from_dict(entry, api) for entry in entries]

        resources = {}
        for key, resource_cls, _ in RESOURCE_SECTIONS:
            entries = data.get(key) or []
            if not isinstance(entries, list):
                raise ManifestError(f"'{key}' must be a list")
            resources[key] = [resource_cls.from_dict(entry) for entry in entries]

        return cls(
            image_name=data.get('image_name') or '',
            version=data.get('version', 2),
            apis=list(apis),
            providers=providers,
            metadata_store=StoreSpec.from_dict(data.get('metadata_store')),
            inference_store=StoreSpec.from_dict(data.get('inference_store')),
            server=ServerSpec.from_dict(data.get('server')),
            extra={k: v for k, v in data.items() if k not in SCHEMA_ORDER},
            **resources,
        )

    @classmethod
    def from_yaml_string(cls, text: str) -> 'DistributionManifest':
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid YAML: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls, yaml_file: str) -> 'DistributionManifest':
        """Load a manifest from a run.yaml file."""
        with open(yaml_file, 'r', encoding='utf-8') as f:
            manifest = cls.from_yaml_string(f.read())
        logger.debug(f"Loaded manifest '{manifest.image_name}' from {yaml_file}")
        return manifest

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'version': self.version,
            'image_name': self.image_name,
            'apis': list(self.apis),
            'providers': {
                api: [p.to_dict() for p in entries] for api, entries in self.providers.items()
            },
        }
        if self.metadata_store is not None:
            data['metadata_store'] = self.metadata_store.to_dict()
        if self.inference_store is not None:
            data['inference_store'] = self.inference_store.to_dict()
        for key, _, _ in RESOURCE_SECTIONS:
            data[key] = [r.to_dict() for r in getattr(self, key)]
        data['server'] = self.server.to_dict()
        data.update(self.extra)
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False, allow_unicode=True)

    def save_yaml(self, yaml_file: str):
        """Write the manifest to a YAML file."""
        with open(yaml_file, 'w', encoding='utf-8') as f:
            f.write(self.to_yaml())
        logger.info(f"Manifest '{self.image_name}' written to {yaml_file}")

    def provider_ids(self, api: str) -> List[str]:
        return [p.provider_id for p in self.providers.get(api, [])]

    def find_provider(self, api: str, provider_id: str) -> Optional[ProviderSpec]:
        for provider in self.providers.get(api, []):
            if provider.provider_id == provider_id:
                return provider
        return None

    def models_of_type(self, model_type: str) -> List[ModelSpec]:
        return [m for m in self.models if m.model_type == model_type]

    def env_references(self):
        """Environment variables referenced anywhere in the manifest."""
        return find_env_references(self.to_dict())

    def resolve(self, env: Optional[Mapping[str, str]] = None) -> 'DistributionManifest':
        """Return a copy with every ${env.*} placeholder substituted."""
        return DistributionManifest.from_dict(replace_env_vars(self.to_dict(), env))

    def validate(self) -> List[str]:
        """
        Check the manifest for structural and referential problems.

        Returns:
            List of problem descriptions; empty when the manifest is consistent
        """
        problems = []

        if not self.image_name:
            problems.append("image_name is required")

        for api in self.apis:
            if api not in KNOWN_APIS:
                problems.append(f"Unknown API '{api}' in apis")
            elif not self.providers.get(api):
                problems.append(f"API '{api}' is listed in apis but has no providers")
        for api in self.providers:
            if api not in self.apis:
                problems.append(f"Providers are configured for '{api}' which is not listed in apis")

        for api, entries in self.providers.items():
            seen = set()
            for provider in entries:
                if provider.provider_id in seen:
                    problems.append(f"Duplicate provider_id '{provider.provider_id}' under '{api}'")
                seen.add(provider.provider_id)
                if not provider.provider_type.startswith(PROVIDER_TYPE_PREFIXES):
                    problems.append(
                        f"Provider '{provider.provider_id}' under '{api}' has provider_type "
                        f"'{provider.provider_type}' without a remote:: or inline:: prefix"
                    )

        for key, _, api in RESOURCE_SECTIONS:
            problems.extend(self._check_bindings(key, api))

        problems.extend(self._check_models())

        embedding_ids = {m.model_id for m in self.models_of_type('embedding')}
        for vector_db in self.vector_dbs:
            model = vector_db.embedding_model
            if model and not has_placeholder(model) and model not in embedding_ids:
                problems.append(
                    f"vector_db '{vector_db.vector_db_id}' uses embedding_model '{model}' "
                    f"which is not a registered embedding model"
                )

        dataset_ids = {d.dataset_id for d in self.datasets}
        for benchmark in self.benchmarks:
            if dataset_ids and benchmark.dataset_id and benchmark.dataset_id not in dataset_ids:
                problems.append(
                    f"benchmark '{benchmark.benchmark_id}' refers to unknown dataset '{benchmark.dataset_id}'"
                )

        port = self.server.port
        if not has_placeholder(port):
            if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
                problems.append(f"server.port must be an integer between 1 and 65535, got {port!r}")

        return problems

    def _check_bindings(self, key: str, api: str) -> List[str]:
        problems = []
        provider_ids = self.provider_ids(api)
        seen = set()
        for resource in getattr(self, key):
            identifier = resource.identifier
            if identifier in seen and not has_placeholder(identifier):
                problems.append(f"Duplicate {resource.id_field} '{identifier}' in {key}")
            seen.add(identifier)

            provider_id = resource.provider_id
            if provider_id is None:
                if len(provider_ids) != 1:
                    problems.append(
                        f"{resource.kind} '{identifier}' has no provider_id and '{api}' "
                        f"has {len(provider_ids)} providers"
                    )
            elif not has_placeholder(provider_id) and provider_id not in provider_ids:
                problems.append(
                    f"{resource.kind} '{identifier}' refers to provider '{provider_id}' "
                    f"which is not configured under '{api}'"
                )
        return problems

    def _check_models(self) -> List[str]:
        problems = []
        for model in self.models:
            if model.model_type not in MODEL_TYPES:
                problems.append(f"model '{model.model_id}' has unknown model_type '{model.model_type}'")
            elif model.model_type == 'embedding':
                metadata = model.metadata if isinstance(model.metadata, dict) else {}
                dimension = metadata.get('embedding_dimension')
                if isinstance(dimension, bool) or not isinstance(dimension, int):
                    problems.append(
                        f"embedding model '{model.model_id}' needs an integer metadata.embedding_dimension"
                    )
        return problems

    def check(self) -> 'DistributionManifest':
        """Raise ManifestValidationError when validate() reports any problem."""
        problems = self.validate()
        if problems:
            raise ManifestValidationError(problems)
        return self


def load_manifest(yaml_file: str, resolve: bool = False,
                  env: Optional[Mapping[str, str]] = None) -> DistributionManifest:
    """Load a manifest from disk, optionally substituting environment variables."""
    manifest = DistributionManifest.from_yaml(yaml_file)
    return manifest.resolve(env) if resolve else manifest


def resolve_manifest(manifest: DistributionManifest,
                     env: Optional[Mapping[str, str]] = None) -> DistributionManifest:
    return manifest.resolve(env)
