"""Shared fixtures for the toolkit tests"""
import copy
from pathlib import Path

import pytest

from distro.templates import get_distribution_template

FIXTURES = Path(__file__).parent / "fixtures"

DELL_ENV_VARS = [
    'DEH_URL', 'DEH_SAFETY_URL', 'CHROMA_URL', 'INFERENCE_MODEL', 'SAFETY_MODEL',
    'SQLITE_STORE_DIR', 'OTEL_SERVICE_NAME', 'TELEMETRY_SINKS', 'OTEL_EXPORTER_OTLP_ENDPOINT',
    'OPENAI_API_KEY', 'BRAVE_SEARCH_API_KEY', 'TAVILY_SEARCH_API_KEY',
]

MINIMAL_MANIFEST = {
    'version': 2,
    'image_name': 'mini',
    'apis': ['inference', 'tool_runtime'],
    'providers': {
        'inference': [
            {'provider_id': 'tgi0', 'provider_type': 'remote::tgi', 'config': {'url': '${env.DEH_URL}'}},
            {'provider_id': 'sentence-transformers', 'provider_type': 'inline::sentence-transformers'},
        ],
        'tool_runtime': [
            {'provider_id': 'rag-runtime', 'provider_type': 'inline::rag-runtime'},
        ],
    },
    'models': [
        {'model_id': 'llama', 'provider_id': 'tgi0', 'model_type': 'llm'},
        {
            'model_id': 'all-MiniLM-L6-v2',
            'provider_id': 'sentence-transformers',
            'model_type': 'embedding',
            'metadata': {'embedding_dimension': 384},
        },
    ],
    'tool_groups': [{'toolgroup_id': 'builtin::rag', 'provider_id': 'rag-runtime'}],
    'server': {'port': 8321},
}


@pytest.fixture
def dell_run_yaml():
    """Path to the reference Dell TGI run.yaml"""
    return str(FIXTURES / "dell-run.yaml")


@pytest.fixture
def dell_compose_yaml():
    """Path to the reference Dell TGI compose.yaml"""
    return str(FIXTURES / "dell-tgi-compose.yaml")


@pytest.fixture
def dell_template():
    return get_distribution_template('dell')


@pytest.fixture
def minimal_manifest_dict():
    """A small consistent manifest, safe to mutate"""
    return copy.deepcopy(MINIMAL_MANIFEST)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable the Dell manifest reads"""
    for name in DELL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def dell_env():
    return {
        'DEH_URL': 'http://localhost:5009',
        'CHROMA_URL': 'http://localhost:6601',
        'INFERENCE_MODEL': 'meta-llama/Llama-3.1-8B-Instruct',
    }
