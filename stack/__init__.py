"""
Stack package for talking to a running Llama Stack server.
"""

from .client import (
    Document,
    QueryChunk,
    StackClient,
    StackClientError,
    StackUnavailableError,
    documents_from_paths
)

__all__ = [
    'Document',
    'QueryChunk',
    'StackClient',
    'StackClientError',
    'StackUnavailableError',
    'documents_from_paths'
]
