"""
Exceptions raised while loading, resolving and validating distribution manifests.
"""

from typing import List


class ManifestError(ValueError):
    """Raised when a manifest cannot be parsed into a distribution."""


class ManifestValidationError(ManifestError):
    """Raised by DistributionManifest.check() when validation finds problems."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        lines = "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(f"Manifest has {len(self.problems)} problem(s):\n{lines}")


class EnvSubstitutionError(KeyError):
    """Raised when a required ${env.NAME} placeholder has no value."""

    def __init__(self, name: str, path: str = ""):
        self.name = name
        self.path = path
        where = f" (at {path})" if path else ""
        super().__init__(f"Environment variable '{name}' is not set{where}")

    def __str__(self) -> str:
        return self.args[0]
