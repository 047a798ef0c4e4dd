"""
Environment variable handling for Llama Stack distribution manifests.

Manifests reference the environment with three placeholder forms:

- ``${env.NAME}``: required, the variable must be set
- ``${env.NAME:=default}``: the variable's value, or ``default`` when unset or empty
- ``${env.NAME:+value}``: ``value`` when the variable is set and non-empty, else empty
"""

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import EnvSubstitutionError

ENV_PATTERN = re.compile(r'\$\{env\.([A-Za-z0-9_]+)(?::([=+])([^}]*))?\}')

_INT_PATTERN = re.compile(r'^[-+]?\d+$')
_FLOAT_PATTERN = re.compile(r'^[-+]?(\d+\.\d*|\.\d+|\d+(\.\d*)?[eE][-+]?\d+)$')


@dataclass
class EnvReference:
    """A single environment variable referenced by a manifest."""

    name: str
    default: Optional[str] = None
    required: bool = False
    conditional: bool = False
    paths: List[str] = field(default_factory=list)


def _join_path(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


def _coerce(value: str) -> Any:
    """Convert a fully substituted scalar to bool/int/float where it reads as one."""
    lowered = value.lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    if _INT_PATTERN.match(value):
        return int(value)
    if _FLOAT_PATTERN.match(value):
        return float(value)
    return value


def substitute_string(value: str, env: Optional[Mapping[str, str]] = None, path: str = "") -> Any:
    """
    Replace every placeholder in a single string.

    Args:
        value: String possibly containing ${env.*} placeholders
        env: Mapping to read variables from (defaults to os.environ)
        path: Dotted location of the value, used in error messages

    Returns:
        The substituted string, or a bool/int/float when the whole string
        was a single placeholder whose value reads as one
    """
    env = os.environ if env is None else env

    def _replace(match) -> str:
        name, operator, operand = match.group(1), match.group(2), match.group(3)
        current = env.get(name)
        if operator == '=':
            return current if current else operand
        if operator == '+':
            return operand if current else ''
        if current is None:
            raise EnvSubstitutionError(name, path)
        return current

    whole = ENV_PATTERN.fullmatch(value) is not None
    result = ENV_PATTERN.sub(_replace, value)
    if whole:
        return _coerce(result)
    return result


def replace_env_vars(obj: Any, env: Optional[Mapping[str, str]] = None, path: str = "") -> Any:
    """Return a copy of ``obj`` with placeholders substituted in every string scalar."""
    if isinstance(obj, dict):
        return {k: replace_env_vars(v, env, _join_path(path, k)) for k, v in obj.items()}
    if isinstance(obj, list):
        return [replace_env_vars(v, env, _join_path(path, i)) for i, v in enumerate(obj)]
    if isinstance(obj, str):
        return substitute_string(obj, env, path)
    return obj


def has_placeholder(value: Any) -> bool:
    """True when ``value`` is a string containing at least one placeholder."""
    return isinstance(value, str) and ENV_PATTERN.search(value) is not None


def find_env_references(obj: Any, path: str = "") -> List[EnvReference]:
    """
    Collect the environment variables referenced anywhere in ``obj``.

    References are returned in first-seen order, one per variable name. A
    variable is required if any of its occurrences has no default.
    """
    found: Dict[str, EnvReference] = {}

    def _walk(node: Any, node_path: str):
        if isinstance(node, dict):
            for k, v in node.items():
                _walk(v, _join_path(node_path, k))
        elif isinstance(node, list):
            for i, v in enumerate(node):
                _walk(v, _join_path(node_path, i))
        elif isinstance(node, str):
            for match in ENV_PATTERN.finditer(node):
                name, operator, operand = match.group(1), match.group(2), match.group(3)
                ref = found.get(name)
                if ref is None:
                    ref = found[name] = EnvReference(name=name)
                if operator == '=' and ref.default is None:
                    ref.default = operand
                elif operator == '+':
                    ref.conditional = True
                elif operator is None:
                    ref.required = True
                if node_path not in ref.paths:
                    ref.paths.append(node_path)

    _walk(obj, path)
    return list(found.values())


def missing_env_vars(obj: Any, env: Optional[Mapping[str, str]] = None) -> List[str]:
    """Names of required variables referenced by ``obj`` that are not set in ``env``."""
    env = os.environ if env is None else env
    return [ref.name for ref in find_env_references(obj) if ref.required and ref.name not in env]
