"""
Testmatrix package for the Llama Stack integration test workflow.
"""

from .matrix import (
    IntegrationRun,
    MatrixEntry,
    WorkflowEvent,
    build_matrix,
    discover_test_types,
    should_run,
    write_github_output
)

__all__ = [
    'IntegrationRun',
    'MatrixEntry',
    'WorkflowEvent',
    'build_matrix',
    'discover_test_types',
    'should_run',
    'write_github_output'
]
