"""
Client helpers for a running Llama Stack server.

Covers the operations used to smoke-test a distribution: liveness, provider
and model listing, vector DB registration, document insertion, semantic
query and chat completion.
"""

import logging
import mimetypes
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
from llama_stack_client import LlamaStackClient

logger = logging.getLogger(__name__)

HEALTH_PATH = '/v1/health'
HEALTHY_STATUS = 'OK'


class StackClientError(Exception):
    """Raised when a call to the Llama Stack server fails."""

    def __init__(self, message: str, url: str, operation: Optional[str] = None,
                 cause: Optional[Exception] = None):
        self.url = url
        self.operation = operation
        self.cause = cause
        super().__init__(f"{message} (url={url})")


class StackUnavailableError(StackClientError):
    """Raised when the server does not become healthy in time."""


@dataclass
class Document:
    """A document to be chunked and inserted into a vector DB."""

    document_id: str
    content: str
    mime_type: str = 'text/plain'
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document_id': self.document_id,
            'content': self.content,
            'mime_type': self.mime_type,
            'metadata': self.metadata,
        }


@dataclass
class QueryChunk:
    content: str
    score: Optional[float] = None
    document_id: Optional[str] = None


def documents_from_paths(paths: Iterable[str]) -> List[Document]:
    """Read text files into Documents, one per file, keyed by file name."""
    documents = []
    for path in paths:
        file_path = Path(path)
        mime_type, _ = mimetypes.guess_type(file_path.name)
        documents.append(Document(
            document_id=file_path.name,
            content=file_path.read_text(encoding='utf-8'),
            mime_type=mime_type or 'text/plain',
            metadata={'source': str(file_path)},
        ))
    return documents


def _extract_content(response: Any) -> str:
    if response is None:
        return ""
    if hasattr(response, "choices") and response.choices:
        message = response.choices[0].message
        content = getattr(message, "content", None)
        if content:
            return str(content)
    completion = getattr(response, "completion_message", None)
    if completion is not None and getattr(completion, "content", None):
        return str(completion.content)
    return ""


class StackClient:
    """Thin wrapper around LlamaStackClient and an httpx client for raw endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:8321",
        timeout: float = 300.0,
        client: Optional[LlamaStackClient] = None,
        http: Optional[httpx.Client] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: URL of the Llama Stack server
            timeout: Request timeout in seconds
            client: Pre-built LlamaStackClient (created lazily when omitted)
            http: Pre-built httpx.Client used for the health endpoint
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = client
        self._http = http

    @property
    def client(self) -> LlamaStackClient:
        if self._client is None:
            logger.debug(f"Creating Llama Stack client for {self.base_url}")
            self._client = LlamaStackClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(base_url=self.base_url, timeout=self.timeout)
        return self._http

    def _call(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except StackClientError:
            raise
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            raise StackClientError(f"{operation} failed: {e}", self.base_url, operation, e) from e

    def health(self) -> Dict[str, Any]:
        """Return the JSON body of ``GET /v1/health``."""
        try:
            response = self.http.get(HEALTH_PATH)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StackClientError(f"Health check failed: {e}", self.base_url, 'health', e) from e

    def is_healthy(self) -> bool:
        try:
            return self.health().get('status') == HEALTHY_STATUS
        except StackClientError as e:
            logger.debug(f"Server not healthy yet: {e}")
            return False

    def wait_until_healthy(
        self,
        timeout: float = 120.0,
        interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ) -> float:
        """
        Poll the health endpoint until the server reports OK.

        Args:
            timeout: Seconds to wait before giving up
            interval: Seconds between polls
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)

        Returns:
            Seconds waited
        """
        start = clock()
        attempts = 0
        while True:
            attempts += 1
            if self.is_healthy():
                waited = clock() - start
                logger.info(f"Llama Stack at {self.base_url} healthy after {attempts} attempt(s)")
                return waited
            if clock() - start + interval > timeout:
                raise StackUnavailableError(
                    f"Server not healthy after {timeout:.0f}s ({attempts} attempts)",
                    self.base_url,
                    'wait_until_healthy'
                )
            sleep(interval)

    def list_providers(self, api: Optional[str] = None) -> List[Dict[str, Any]]:
        """List providers, optionally only those serving ``api``."""
        providers = self._call('list_providers', self.client.providers.list)
        result = []
        for provider in providers:
            if api is not None and getattr(provider, 'api', None) != api:
                continue
            result.append({
                'api': getattr(provider, 'api', None),
                'provider_id': getattr(provider, 'provider_id', None),
                'provider_type': getattr(provider, 'provider_type', None),
            })
        return result

    def list_models(self) -> List[str]:
        models = self._call('list_models', self.client.models.list)
        return [m.identifier for m in models]

    def register_vector_db(
        self,
        vector_db_id: str,
        embedding_model: str = 'all-MiniLM-L6-v2',
        embedding_dimension: int = 384,
        provider_id: Optional[str] = None
    ) -> Any:
        """Register a vector DB (memory bank) backed by ``provider_id``."""
        logger.info(f"Registering vector DB {vector_db_id} with {embedding_model}")
        kwargs = {
            'vector_db_id': vector_db_id,
            'embedding_model': embedding_model,
            'embedding_dimension': embedding_dimension,
        }
        if provider_id:
            kwargs['provider_id'] = provider_id
        return self._call('register_vector_db', self.client.vector_dbs.register, **kwargs)

    def insert_documents(
        self,
        vector_db_id: str,
        documents: List[Document],
        chunk_size_in_tokens: int = 512
    ) -> int:
        """Chunk and insert documents through the RAG tool; returns the count inserted."""
        if not documents:
            return 0
        self._call(
            'insert_documents',
            self.client.tool_runtime.rag_tool.insert,
            documents=[d.to_dict() for d in documents],
            vector_db_id=vector_db_id,
            chunk_size_in_tokens=chunk_size_in_tokens,
        )
        logger.info(f"Inserted {len(documents)} document(s) into {vector_db_id}")
        return len(documents)

    def query(self, vector_db_id: str, query: str, max_chunks: int = 5) -> List[QueryChunk]:
        """Semantic query against a vector DB."""
        response = self._call(
            'query',
            self.client.vector_io.query,
            vector_db_id=vector_db_id,
            query=query,
            params={'max_chunks': max_chunks},
        )
        chunks = list(getattr(response, 'chunks', None) or [])
        scores = list(getattr(response, 'scores', None) or [])
        results = []
        for i, chunk in enumerate(chunks):
            metadata = getattr(chunk, 'metadata', None) or {}
            results.append(QueryChunk(
                content=str(getattr(chunk, 'content', '')),
                score=scores[i] if i < len(scores) else None,
                document_id=metadata.get('document_id'),
            ))
        return results

    def chat_completion(self, model_id: str, messages: List[Dict[str, Any]]) -> str:
        """Run a non-streaming chat completion and return the assistant text."""
        response = self._call(
            'chat_completion',
            self.client.chat.completions.create,
            model=model_id,
            messages=messages,
            stream=False,
        )
        return _extract_content(response)

    def close(self):
        if self._client is not None:
            self._client.close()
        if self._http is not None:
            self._http.close()
