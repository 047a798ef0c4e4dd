"""
Integration test matrix for Llama Stack CI.

Discovers the integration test suites, expands them into the job matrix
(test type x client type x provider x python version x client version) and
derives the settings each matrix job runs pytest with.
"""

import fnmatch
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from itertools import product
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

EXCLUDED_DIRS = ('__pycache__', 'fixtures', 'test_cases')

CLIENT_TYPES = ['library', 'server']
PYTHON_VERSIONS = ['3.12', '3.13']
DEFAULT_PROVIDER = 'ollama'

WEEKLY_VLLM_SCHEDULE = '1 0 * * 0'
# Published client versions are added on this schedule or on manual request.
ALL_CLIENTS_SCHEDULE = '0 0 * * 0'

MATRIX_EXCLUDES = [
    {'provider': 'vllm', 'test_type': 'safety'},
    {'provider': 'vllm', 'test_type': 'post_training'},
    {'provider': 'vllm', 'test_type': 'tool_runtime'},
]

WATCHED_PATHS = [
    'llama_stack/**',
    'tests/**',
    'uv.lock',
    'pyproject.toml',
    'requirements.txt',
    '.github/workflows/integration-tests.yml',
    '.github/actions/setup-ollama/action.yml',
]

DEFAULT_BRANCH = 'main'
STACK_CONFIG = 'ci-tests'
EMBEDDING_MODEL = 'sentence-transformers/all-MiniLM-L6-v2'
CLIENT_TIMEOUT = '300'
BASE_EXCLUDED_TESTS = ['builtin_tool', 'safety_with_image', 'code_interpreter', 'test_rag']


def discover_test_types(root: str = 'tests/integration',
                        exclude: Sequence[str] = EXCLUDED_DIRS) -> List[str]:
    """
    List the integration test suites under ``root``.

    Args:
        root: Directory whose immediate sub-directories are test suites
        exclude: Directory names that are not suites

    Returns:
        Sorted suite names
    """
    root_path = Path(root)
    if not root_path.is_dir():
        logger.warning(f"Test root {root} does not exist")
        return []
    return sorted(
        entry.name for entry in root_path.iterdir()
        if entry.is_dir() and entry.name not in exclude
    )


def _payload_base_ref(payload: Dict[str, Any]) -> Optional[str]:
    base = (payload.get('pull_request') or {}).get('base') or {}
    return base.get('ref')


@dataclass
class WorkflowEvent:
    """The parts of a GitHub event that shape the matrix."""

    event_name: str = 'push'
    schedule: Optional[str] = None
    inputs: Dict[str, Any] = field(default_factory=dict)
    ref: str = f'refs/heads/{DEFAULT_BRANCH}'
    # target branch of a pull request; GITHUB_REF is refs/pull/<N>/merge there
    base_ref: Optional[str] = None

    @classmethod
    def from_github_env(cls, env=None) -> 'WorkflowEvent':
        """Build the event from GITHUB_* variables and the event payload file."""
        env = os.environ if env is None else env
        payload: Dict[str, Any] = {}
        event_path = env.get('GITHUB_EVENT_PATH')
        if event_path and os.path.exists(event_path):
            with open(event_path, 'r', encoding='utf-8') as f:
                payload = json.load(f)
        return cls(
            event_name=env.get('GITHUB_EVENT_NAME', 'push'),
            schedule=payload.get('schedule'),
            inputs=payload.get('inputs') or {},
            ref=env.get('GITHUB_REF', cls.ref),
            base_ref=env.get('GITHUB_BASE_REF') or _payload_base_ref(payload),
        )

    def input(self, name: str, default: Any = None) -> Any:
        value = self.inputs.get(name)
        return default if value in (None, '') else value


def select_providers(event: WorkflowEvent) -> List[str]:
    """vllm on the weekly schedule, otherwise the requested provider (ollama by default)."""
    if event.schedule == WEEKLY_VLLM_SCHEDULE:
        return ['vllm']
    return [event.input('test-provider', DEFAULT_PROVIDER)]


def select_client_versions(event: WorkflowEvent) -> List[str]:
    test_all = str(event.input('test-all-client-versions', 'false')).lower() == 'true'
    if event.schedule == ALL_CLIENTS_SCHEDULE or test_all:
        return ['published', 'latest']
    return ['latest']


@dataclass(frozen=True)
class MatrixEntry:
    test_type: str
    client_type: str
    provider: str
    python_version: str
    client_version: str

    def to_dict(self) -> Dict[str, str]:
        return {k.replace('_', '-'): v for k, v in asdict(self).items()}


def is_excluded(entry: MatrixEntry, excludes: Iterable[Dict[str, str]] = MATRIX_EXCLUDES) -> bool:
    """True when every key of some exclude rule matches the entry."""
    values = asdict(entry)
    return any(all(values.get(k) == v for k, v in rule.items()) for rule in excludes)


def build_matrix(test_types: Sequence[str], event: Optional[WorkflowEvent] = None) -> List[MatrixEntry]:
    """
    Expand the job matrix in GitHub Actions order, first axis outermost.

    Args:
        test_types: Discovered test suites
        event: Triggering event; a plain push when omitted

    Returns:
        Matrix entries with excluded combinations removed
    """
    event = event or WorkflowEvent()
    entries = [
        MatrixEntry(*combo)
        for combo in product(
            test_types,
            CLIENT_TYPES,
            select_providers(event),
            PYTHON_VERSIONS,
            select_client_versions(event),
        )
    ]
    kept = [e for e in entries if not is_excluded(e)]
    logger.info(f"Matrix has {len(kept)} job(s) ({len(entries) - len(kept)} excluded)")
    return kept


@dataclass
class IntegrationRun:
    """Everything one matrix job needs to run its pytest invocation."""

    entry: MatrixEntry
    stack_config: str
    env: Dict[str, str]
    excluded_tests: List[str]
    extra_params: List[str]
    text_model: str
    embedding_model: str = EMBEDDING_MODEL

    @classmethod
    def from_entry(cls, entry: MatrixEntry) -> 'IntegrationRun':
        stack_config = STACK_CONFIG if entry.client_type == 'library' else f"server:{STACK_CONFIG}"
        excluded = list(BASE_EXCLUDED_TESTS)
        env = {'LLAMA_STACK_CLIENT_TIMEOUT': CLIENT_TIMEOUT}

        if entry.provider == 'ollama':
            text_model = 'ollama/llama3.2:3b-instruct-fp16'
            env.update({
                'OLLAMA_URL': 'http://0.0.0.0:11434',
                'TEXT_MODEL': text_model,
                'SAFETY_MODEL': 'ollama/llama-guard3:1b',
            })
            extra_params = ['--safety-shield=llama-guard']
        else:
            text_model = 'vllm/meta-llama/Llama-3.2-1B-Instruct'
            env.update({
                'VLLM_URL': 'http://localhost:8000/v1',
                'TEXT_MODEL': text_model,
            })
            extra_params = []
            # tool calls are not produced consistently by the small vllm model
            excluded.append('test_inference_store_tool_calls')

        return cls(
            entry=entry,
            stack_config=stack_config,
            env=env,
            excluded_tests=excluded,
            extra_params=extra_params,
            text_model=text_model,
        )

    @property
    def keyword_expression(self) -> str:
        return f"not( {' or '.join(self.excluded_tests)} )"

    @property
    def log_file(self) -> str:
        return f"pytest-{self.entry.test_type}.log"

    def pytest_args(self, tests_root: str = 'tests/integration') -> List[str]:
        return [
            'pytest', '-s', '-v', f"{tests_root}/{self.entry.test_type}",
            f"--stack-config={self.stack_config}",
            '-k', self.keyword_expression,
            f"--text-model={self.text_model}",
            f"--embedding-model={self.embedding_model}",
            '--color=yes',
            *self.extra_params,
            '--capture=tee-sys',
        ]

    def artifact_name(self, run_id: str, run_attempt: str) -> str:
        e = self.entry
        return (
            f"logs-{run_id}-{run_attempt}-{e.provider}-{e.client_type}-"
            f"{e.test_type}-{e.python_version}-{e.client_version}"
        )


def _branch(ref: str) -> str:
    prefix = 'refs/heads/'
    return ref[len(prefix):] if ref.startswith(prefix) else ref


def path_matches(path: str, patterns: Sequence[str] = WATCHED_PATHS) -> bool:
    for pattern in patterns:
        if pattern.endswith('/**'):
            if path.startswith(pattern[:-2]):
                return True
        elif fnmatch.fnmatchcase(path, pattern):
            return True
    return False


def should_run(event: WorkflowEvent, branch: Optional[str] = None,
               changed_paths: Optional[Sequence[str]] = None) -> bool:
    """
    Apply the workflow triggers.

    Pushes run on the default branch; pull requests targeting it run only
    when a watched path changed; schedules and manual dispatches always run.
    """
    if event.event_name in ('schedule', 'workflow_dispatch'):
        return True
    if branch is None:
        if event.event_name == 'pull_request' and event.base_ref:
            branch = _branch(event.base_ref)
        else:
            branch = _branch(event.ref)
    if branch != DEFAULT_BRANCH:
        return False
    if event.event_name == 'push':
        return True
    if event.event_name == 'pull_request':
        return any(path_matches(p) for p in (changed_paths or []))
    return False


def concurrency_group(workflow: str, ref: str) -> str:
    return f"{workflow}-{ref}"


def write_github_output(name: str, value: Any, path: Optional[str] = None) -> str:
    """
    Append ``name=<compact json>`` to the GitHub step output file.

    Falls back to stdout when neither ``path`` nor GITHUB_OUTPUT is set.
    """
    line = f"{name}={json.dumps(value, separators=(',', ':'))}"
    path = path or os.environ.get('GITHUB_OUTPUT')
    if path:
        with open(path, 'a', encoding='utf-8') as f:
            f.write(line + "\n")
    else:
        print(line)
    return line
