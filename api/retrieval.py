"""Milvus-based retrieval for news chunks.

This module embeds a query with the OpenAI embeddings API and runs a top-k
similarity search against one Milvus collection over its REST API (v2).
Search failures degrade to "no documents" so a chat turn can still be
answered; a vector dimension mismatch is a configuration error and is raised.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from libs.common.errors import ConfigurationError, UpstreamUnavailableError
from libs.models.conversation import RetrievedDoc

logger = structlog.get_logger(__name__)

OPENAI_EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"
SEARCH_OUTPUT_FIELDS = ["text", "title", "link"]
DEFAULT_TOP_K = 5


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, UpstreamUnavailableError) and exc.retryable


_transient_retry = retry(
    retry=retry_if_exception(_is_transient),
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
    reraise=True,
)


def milvus_base_url(endpoint: str) -> str:
    """Normalize a Milvus endpoint to its REST v2 base URL."""
    if not endpoint.startswith(("https://", "http://")):
        raise ConfigurationError(f"Unsupported Milvus endpoint format: {endpoint}")
    base_url = endpoint.rstrip("/").replace(":443", "")
    if not base_url.endswith("/v2/vectordb"):
        base_url += "/v2/vectordb"
    return base_url


class EmbeddingClient:
    """OpenAI client for generating query embeddings."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        url: str = OPENAI_EMBEDDINGS_URL,
    ):
        self.http = http
        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.url = url

    @_transient_retry
    async def embed(self, text: str) -> List[float]:
        """
        Get the embedding vector for one text.

        Raises:
            UpstreamUnavailableError: On HTTP errors or a malformed response
            ConfigurationError: If the vector length differs from ``dimensions``
        """
        response = await self.http.post(
            self.url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.model,
                "input": [text[:8000]],  # Truncate to avoid token limits
                "dimensions": self.dimensions,
                "encoding_format": "float",
            },
            timeout=30.0,
        )

        if response.status_code != 200:
            logger.error("OpenAI embedding failed", status=response.status_code, response=response.text[:200])
            raise UpstreamUnavailableError(
                "embeddings",
                f"HTTP {response.status_code}",
                retryable=is_retryable_status(response.status_code),
            )

        try:
            embedding = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamUnavailableError("embeddings", f"malformed response: {e}") from e

        if len(embedding) != self.dimensions:
            raise ConfigurationError(
                f"Embedding model {self.model} returned {len(embedding)} dimensions, expected {self.dimensions}"
            )

        logger.debug("Embedding generated", model=self.model, input_length=len(text), embedding_dim=len(embedding))
        return embedding


class MilvusClient:
    """Milvus REST client for one collection."""

    def __init__(self, http: httpx.AsyncClient, endpoint: str, token: str, collection_name: str):
        self.http = http
        self.base_url = milvus_base_url(endpoint)
        self.collection_name = collection_name
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _post(self, path: str, payload: Dict[str, Any], timeout: float = 30.0) -> Dict[str, Any]:
        response = await self.http.post(f"{self.base_url}{path}", headers=self.headers, json=payload, timeout=timeout)
        if response.status_code != 200:
            logger.error("Milvus request failed", path=path, status=response.status_code, response=response.text[:200])
            raise UpstreamUnavailableError(
                "milvus",
                f"{path} returned HTTP {response.status_code}",
                retryable=is_retryable_status(response.status_code),
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("milvus", f"{path} returned invalid JSON") from e

        # Milvus reports errors with HTTP 200 and a non-zero code
        if data.get("code", 0) != 0:
            raise UpstreamUnavailableError("milvus", f"{path} error {data.get('code')}: {data.get('message', '')}")
        return data

    async def connect(self, expected_dimensions: int) -> None:
        """
        Verify the collection exists and matches the embedding dimension.

        Raises:
            ConfigurationError: If the collection is missing or its vector
                dimension differs from ``expected_dimensions``
        """
        try:
            data = await self._post("/collections/describe", {"collectionName": self.collection_name}, timeout=10.0)
        except UpstreamUnavailableError as e:
            raise ConfigurationError(f"Milvus collection '{self.collection_name}' is not available: {e}") from e
        except httpx.HTTPError as e:
            raise ConfigurationError(f"Milvus is not reachable at {self.base_url}: {e}") from e

        dimension = vector_dimension(data.get("data", {}))
        if dimension is not None and dimension != expected_dimensions:
            raise ConfigurationError(
                f"Milvus collection '{self.collection_name}' has dimension {dimension}, "
                f"embeddings have {expected_dimensions}"
            )

        logger.info(
            "Milvus HTTP API connected",
            endpoint=self.base_url,
            collection=self.collection_name,
            dimension=dimension,
        )

    @_transient_retry
    async def search(self, query_vector: List[float], top_k: int = DEFAULT_TOP_K) -> List[RetrievedDoc]:
        """Top-k similarity search returning payload-enriched hits."""
        data = await self._post(
            "/entities/search",
            {
                "collectionName": self.collection_name,
                "data": [query_vector],
                "limit": top_k,
                "outputFields": SEARCH_OUTPUT_FIELDS,
            },
        )

        docs = []
        for hit in data.get("data", []):
            text = hit.get("text")
            if not text:
                continue
            docs.append(RetrievedDoc(
                text=text,
                score=float(hit.get("distance", 0.0)),
                title=hit.get("title") or "",
                link=hit.get("link") or "",
            ))
        return docs


def vector_dimension(collection: Dict[str, Any]) -> Optional[int]:
    """Read the float-vector dimension from a collection description."""
    for field in collection.get("fields", []):
        if "Vector" not in str(field.get("type", "")):
            continue
        for param in field.get("params", []):
            if param.get("key") == "dim":
                return int(param.get("value"))
    return None


class RetrievalEngine:
    """Query -> embedding -> Milvus search."""

    def __init__(self, embedding_client: EmbeddingClient, milvus_client: MilvusClient, top_k: int = DEFAULT_TOP_K):
        self.embedding_client = embedding_client
        self.milvus_client = milvus_client
        self.top_k = top_k

    async def retrieve(self, query: str) -> List[RetrievedDoc]:
        """
        Retrieve the most relevant news chunks for a query.

        Args:
            query: Search text (possibly rewritten with conversation context)

        Returns:
            Documents ordered by descending score; empty if anything upstream failed

        Raises:
            ConfigurationError: If the embedding dimension does not match the index
        """
        start_time = time.time()
        try:
            vector = await self.embedding_client.embed(query)
            docs = await self.milvus_client.search(vector, top_k=self.top_k)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error("Retrieval failed", query=query[:100], error=str(e), error_type=type(e).__name__)
            return []

        docs.sort(key=lambda doc: doc.score, reverse=True)
        logger.info(
            "Vector search completed",
            results_count=len(docs),
            top_score=docs[0].score if docs else 0,
            latency_ms=round((time.time() - start_time) * 1000, 2),
        )
        return docs
