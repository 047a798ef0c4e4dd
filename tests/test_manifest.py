"""Tests for the distribution manifest model"""
from pathlib import Path

import pytest

from distro.errors import EnvSubstitutionError, ManifestError, ManifestValidationError
from distro.manifest import (
    DistributionManifest,
    ProviderSpec,
    StoreSpec,
    load_manifest,
    resolve_manifest
)


@pytest.mark.unit
class TestManifestLoading:
    """Test parsing run.yaml documents"""

    def test_load_dell_manifest(self, dell_run_yaml):
        """Test the reference Dell manifest loads with all its sections"""
        manifest = DistributionManifest.from_yaml(dell_run_yaml)

        assert manifest.image_name == 'dell'
        assert manifest.version == 2
        assert len(manifest.apis) == 9
        assert manifest.provider_ids('inference') == ['tgi0', 'sentence-transformers']
        assert manifest.find_provider('vector_io', 'chromadb').config == {'url': '${env.CHROMA_URL}'}
        assert manifest.metadata_store.db_path.endswith('/registry.db')
        assert [m.model_id for m in manifest.models_of_type('embedding')] == ['all-MiniLM-L6-v2']
        assert [g.toolgroup_id for g in manifest.tool_groups] == ['builtin::websearch', 'builtin::rag']
        assert manifest.server.port == 8321

    def test_round_trip_keeps_content(self, dell_run_yaml):
        """Test to_yaml output parses back to the same document"""
        manifest = DistributionManifest.from_yaml(dell_run_yaml)
        reloaded = DistributionManifest.from_yaml_string(manifest.to_yaml())

        assert reloaded.to_dict() == manifest.to_dict()

    def test_key_order_follows_schema(self, minimal_manifest_dict):
        keys = list(DistributionManifest.from_dict(minimal_manifest_dict).to_dict())
        assert keys[:4] == ['version', 'image_name', 'apis', 'providers']
        assert keys[-1] == 'server'

    def test_empty_provider_config_is_omitted(self, minimal_manifest_dict):
        data = DistributionManifest.from_dict(minimal_manifest_dict).to_dict()
        assert 'config' not in data['providers']['tool_runtime'][0]

    def test_unknown_top_level_keys_preserved(self, minimal_manifest_dict):
        minimal_manifest_dict['external_providers_dir'] = '/etc/providers.d'
        manifest = DistributionManifest.from_dict(minimal_manifest_dict)

        assert manifest.extra == {'external_providers_dir': '/etc/providers.d'}
        assert manifest.to_dict()['external_providers_dir'] == '/etc/providers.d'

    def test_unknown_resource_keys_preserved(self, minimal_manifest_dict):
        minimal_manifest_dict['tool_groups'][0]['description'] = 'retrieval'
        manifest = DistributionManifest.from_dict(minimal_manifest_dict)

        assert manifest.tool_groups[0].to_dict()['description'] == 'retrieval'

    def test_non_mapping_document(self):
        with pytest.raises(ManifestError):
            DistributionManifest.from_yaml_string("- just\n- a list\n")

    def test_invalid_yaml(self):
        with pytest.raises(ManifestError, match="Invalid YAML"):
            DistributionManifest.from_yaml_string("apis: [inference\n")

    def test_provider_missing_type(self, minimal_manifest_dict):
        """Test a provider record without provider_type is rejected"""
        del minimal_manifest_dict['providers']['inference'][0]['provider_type']

        with pytest.raises(ManifestError, match="provider_type"):
            DistributionManifest.from_dict(minimal_manifest_dict)

    def test_server_must_be_mapping(self):
        """Test a scalar server section is reported as a manifest error"""
        with pytest.raises(ManifestError, match="'server' must be a mapping"):
            DistributionManifest.from_yaml_string("image_name: x\nserver: 8321\n")

    def test_apis_must_be_list(self, minimal_manifest_dict):
        minimal_manifest_dict['apis'] = 'inference'

        with pytest.raises(ManifestError, match="'apis' must be a list"):
            DistributionManifest.from_dict(minimal_manifest_dict)

    def test_apis_entries_must_be_names(self, minimal_manifest_dict):
        minimal_manifest_dict['apis'].append({'name': 'safety'})

        with pytest.raises(ManifestError, match="'apis' entries"):
            DistributionManifest.from_dict(minimal_manifest_dict)

    @pytest.mark.parametrize("key, value", [
        ('provider_type', 5),
        ('provider_id', ['tgi0', 'tgi1']),
    ])
    def test_provider_fields_must_be_strings(self, minimal_manifest_dict, key, value):
        """Test non-string provider ids and types are rejected while loading"""
        minimal_manifest_dict['providers']['inference'][0][key] = value

        with pytest.raises(ManifestError, match=f"non-string {key}"):
            DistributionManifest.from_dict(minimal_manifest_dict)

    def test_resource_id_must_be_scalar(self, minimal_manifest_dict):
        minimal_manifest_dict['tool_groups'][0]['toolgroup_id'] = ['builtin::rag']

        with pytest.raises(ManifestError, match="toolgroup_id must be a scalar"):
            DistributionManifest.from_dict(minimal_manifest_dict)

    def test_resource_missing_id(self, minimal_manifest_dict):
        minimal_manifest_dict['models'].append({'provider_id': 'tgi0'})

        with pytest.raises(ManifestError, match="model_id"):
            DistributionManifest.from_dict(minimal_manifest_dict)

    def test_save_yaml(self, minimal_manifest_dict, tmp_path):
        path = tmp_path / "run.yaml"
        DistributionManifest.from_dict(minimal_manifest_dict).save_yaml(str(path))

        assert DistributionManifest.from_yaml(str(path)).image_name == 'mini'


@pytest.mark.unit
class TestManifestValidation:
    """Test structural and referential checks"""

    def test_dell_manifest_is_valid(self, dell_run_yaml):
        assert DistributionManifest.from_yaml(dell_run_yaml).validate() == []

    def test_minimal_manifest_is_valid(self, minimal_manifest_dict):
        assert DistributionManifest.from_dict(minimal_manifest_dict).validate() == []

    def test_model_with_unknown_provider(self, minimal_manifest_dict):
        """Test a model bound to a provider that is not configured"""
        minimal_manifest_dict['models'][0]['provider_id'] = 'vllm'
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert problems == [
            "model 'llama' refers to provider 'vllm' which is not configured under 'inference'"
        ]

    def test_tool_group_with_unknown_provider(self, minimal_manifest_dict):
        minimal_manifest_dict['tool_groups'].append(
            {'toolgroup_id': 'builtin::websearch', 'provider_id': 'brave-search'}
        )
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert len(problems) == 1
        assert "brave-search" in problems[0]

    def test_api_without_providers(self, minimal_manifest_dict):
        minimal_manifest_dict['apis'].append('safety')
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert "API 'safety' is listed in apis but has no providers" in problems

    def test_providers_for_unlisted_api(self, minimal_manifest_dict):
        minimal_manifest_dict['apis'].remove('tool_runtime')
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert "Providers are configured for 'tool_runtime' which is not listed in apis" in problems

    def test_unknown_api(self, minimal_manifest_dict):
        minimal_manifest_dict['apis'].append('memory')
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert "Unknown API 'memory' in apis" in problems

    def test_duplicate_provider_id(self, minimal_manifest_dict):
        minimal_manifest_dict['providers']['inference'].append(
            {'provider_id': 'tgi0', 'provider_type': 'remote::tgi'}
        )
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert "Duplicate provider_id 'tgi0' under 'inference'" in problems

    def test_provider_type_prefix(self, minimal_manifest_dict):
        minimal_manifest_dict['providers']['inference'][0]['provider_type'] = 'tgi'
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert len(problems) == 1
        assert "without a remote:: or inline:: prefix" in problems[0]

    def test_embedding_model_needs_dimension(self, minimal_manifest_dict):
        minimal_manifest_dict['models'][1]['metadata'] = {}
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert problems == [
            "embedding model 'all-MiniLM-L6-v2' needs an integer metadata.embedding_dimension"
        ]

    def test_unknown_model_type(self, minimal_manifest_dict):
        minimal_manifest_dict['models'][0]['model_type'] = 'vision'
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert problems == ["model 'llama' has unknown model_type 'vision'"]

    def test_duplicate_model_id(self, minimal_manifest_dict):
        minimal_manifest_dict['models'].append({'model_id': 'llama', 'provider_id': 'tgi0'})
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert "Duplicate model_id 'llama' in models" in problems

    def test_placeholder_ids_are_not_judged(self, minimal_manifest_dict):
        """Test placeholder values skip checks that need concrete values"""
        minimal_manifest_dict['models'].append(
            {'model_id': '${env.INFERENCE_MODEL}', 'provider_id': 'tgi0'}
        )
        minimal_manifest_dict['models'].append(
            {'model_id': '${env.INFERENCE_MODEL}', 'provider_id': 'tgi0'}
        )
        minimal_manifest_dict['server']['port'] = '${env.LLAMA_STACK_PORT:=8321}'

        assert DistributionManifest.from_dict(minimal_manifest_dict).validate() == []

    def test_duplicate_toolgroup_id(self, minimal_manifest_dict):
        minimal_manifest_dict['tool_groups'].append({'toolgroup_id': 'builtin::rag', 'provider_id': 'rag-runtime'})
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert problems == ["Duplicate toolgroup_id 'builtin::rag' in tool_groups"]

    @pytest.mark.parametrize("section, api, id_field, kind", [
        ('shields', 'safety', 'shield_id', 'shield'),
        ('datasets', 'datasetio', 'dataset_id', 'dataset'),
        ('scoring_fns', 'scoring', 'scoring_fn_id', 'scoring_fn'),
    ])
    def test_resource_bound_to_its_api(self, minimal_manifest_dict, section, api, id_field, kind):
        """Test shields, datasets and scoring functions must use a provider of their own API"""
        minimal_manifest_dict['apis'].append(api)
        minimal_manifest_dict['providers'][api] = [{'provider_id': 'p1', 'provider_type': 'inline::p1'}]
        minimal_manifest_dict[section] = [
            {id_field: 'bound', 'provider_id': 'p1'},
            {id_field: 'stray', 'provider_id': 'tgi0'},
        ]
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert problems == [
            f"{kind} 'stray' refers to provider 'tgi0' which is not configured under '{api}'"
        ]

    def test_placeholder_provider_id_is_skipped(self, minimal_manifest_dict):
        minimal_manifest_dict['models'].append(
            {'model_id': 'extra', 'provider_id': '${env.EXTRA_PROVIDER:=vllm}'}
        )

        assert DistributionManifest.from_dict(minimal_manifest_dict).validate() == []

    def test_non_mapping_metadata(self, minimal_manifest_dict):
        minimal_manifest_dict['models'][1]['metadata'] = [384]
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert problems == [
            "embedding model 'all-MiniLM-L6-v2' needs an integer metadata.embedding_dimension"
        ]

    def test_resource_without_provider_id_needs_single_provider(self, minimal_manifest_dict):
        """Test an omitted provider_id is only accepted when the API has one provider"""
        minimal_manifest_dict['tool_groups'].append({'toolgroup_id': 'builtin::other'})
        assert DistributionManifest.from_dict(minimal_manifest_dict).validate() == []

        minimal_manifest_dict['models'].append({'model_id': 'orphan'})
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()
        assert problems == ["model 'orphan' has no provider_id and 'inference' has 2 providers"]

    def test_vector_db_embedding_model(self, minimal_manifest_dict):
        minimal_manifest_dict['apis'].append('vector_io')
        minimal_manifest_dict['providers']['vector_io'] = [
            {'provider_id': 'chromadb', 'provider_type': 'remote::chromadb'}
        ]
        minimal_manifest_dict['vector_dbs'] = [
            {'vector_db_id': 'docs', 'embedding_model': 'all-MiniLM-L6-v2', 'provider_id': 'chromadb'},
            {'vector_db_id': 'notes', 'embedding_model': 'llama', 'provider_id': 'chromadb'},
        ]
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert problems == [
            "vector_db 'notes' uses embedding_model 'llama' which is not a registered embedding model"
        ]

    def test_benchmark_dataset_reference(self, minimal_manifest_dict):
        minimal_manifest_dict['apis'] += ['eval', 'datasetio']
        minimal_manifest_dict['providers']['eval'] = [
            {'provider_id': 'meta-reference', 'provider_type': 'inline::meta-reference'}
        ]
        minimal_manifest_dict['providers']['datasetio'] = [
            {'provider_id': 'localfs', 'provider_type': 'inline::localfs'}
        ]
        minimal_manifest_dict['datasets'] = [{'dataset_id': 'simpleqa', 'provider_id': 'localfs'}]
        minimal_manifest_dict['benchmarks'] = [
            {'benchmark_id': 'meta-reference-simpleqa', 'dataset_id': 'mmlu', 'provider_id': 'meta-reference'}
        ]
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert problems == ["benchmark 'meta-reference-simpleqa' refers to unknown dataset 'mmlu'"]

    @pytest.mark.parametrize("port", [0, 70000, "8321", True])
    def test_bad_server_port(self, minimal_manifest_dict, port):
        minimal_manifest_dict['server']['port'] = port
        problems = DistributionManifest.from_dict(minimal_manifest_dict).validate()

        assert len(problems) == 1
        assert problems[0].startswith("server.port must be an integer")

    def test_missing_image_name(self, minimal_manifest_dict):
        del minimal_manifest_dict['image_name']
        assert DistributionManifest.from_dict(minimal_manifest_dict).validate() == ["image_name is required"]

    def test_check_raises_with_problems(self, minimal_manifest_dict):
        minimal_manifest_dict['models'][0]['provider_id'] = 'vllm'
        manifest = DistributionManifest.from_dict(minimal_manifest_dict)

        with pytest.raises(ManifestValidationError) as exc_info:
            manifest.check()

        assert len(exc_info.value.problems) == 1
        assert "1 problem(s)" in str(exc_info.value)

    def test_check_returns_manifest_when_valid(self, minimal_manifest_dict):
        manifest = DistributionManifest.from_dict(minimal_manifest_dict)
        assert manifest.check() is manifest


@pytest.mark.unit
class TestManifestResolution:
    """Test substituting the environment into a manifest"""

    def test_resolve_dell_manifest(self, dell_run_yaml, dell_env):
        manifest = load_manifest(dell_run_yaml, resolve=True, env=dell_env)

        assert manifest.find_provider('inference', 'tgi0').config == {'url': 'http://localhost:5009'}
        assert manifest.models[0].model_id == 'meta-llama/Llama-3.1-8B-Instruct'
        assert manifest.metadata_store.db_path == '~/.llama/distributions/dell/registry.db'
        assert manifest.find_provider('telemetry', 'meta-reference').config['sinks'] == 'console,sqlite'
        assert manifest.validate() == []

    def test_resolve_uses_store_dir(self, dell_run_yaml, dell_env):
        env = dict(dell_env, SQLITE_STORE_DIR='/var/lib/llama')
        manifest = load_manifest(dell_run_yaml, resolve=True, env=env)

        assert manifest.inference_store.db_path == '/var/lib/llama/inference_store.db'

    def test_resolve_missing_variable(self, dell_run_yaml):
        manifest = DistributionManifest.from_yaml(dell_run_yaml)

        with pytest.raises(EnvSubstitutionError) as exc_info:
            manifest.resolve({'DEH_URL': 'x', 'CHROMA_URL': 'y'})

        assert exc_info.value.name == 'INFERENCE_MODEL'
        assert exc_info.value.path == 'models[0].model_id'

    def test_resolve_manifest_leaves_original(self, minimal_manifest_dict):
        manifest = DistributionManifest.from_dict(minimal_manifest_dict)
        resolved = resolve_manifest(manifest, {'DEH_URL': 'http://tgi:5009'})

        assert resolved.find_provider('inference', 'tgi0').config == {'url': 'http://tgi:5009'}
        assert manifest.find_provider('inference', 'tgi0').config == {'url': '${env.DEH_URL}'}

    def test_env_references(self, dell_run_yaml):
        refs = DistributionManifest.from_yaml(dell_run_yaml).env_references()
        required = [r.name for r in refs if r.required]

        assert required == ['DEH_URL', 'CHROMA_URL', 'INFERENCE_MODEL']


@pytest.mark.unit
class TestSpecs:
    """Test the small record types"""

    def test_provider_kind(self):
        assert ProviderSpec('tgi0', 'remote::tgi').is_remote
        assert ProviderSpec('basic', 'inline::basic').is_inline

    def test_store_expanded_path(self):
        store = StoreSpec(db_path='~/.llama/registry.db')
        assert store.expanded_path() == Path.home() / '.llama' / 'registry.db'

    def test_store_placeholder_path(self):
        store = StoreSpec(db_path='${env.SQLITE_STORE_DIR:=~/.llama}/registry.db')
        assert store.expanded_path() is None

    def test_store_extra_keys(self):
        store = StoreSpec.from_dict({'type': 'postgres', 'host': 'db', 'port': 5432})
        assert store.to_dict() == {'type': 'postgres', 'host': 'db', 'port': 5432}
