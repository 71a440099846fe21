"""Service container for the news chat API.

``ChatServices`` owns every process-wide handle (Redis client, HTTP client
for embeddings and Milvus, OpenAI client) and the orchestrator built on top
of them. It is created in the application lifespan and closed on shutdown;
request handlers get it from ``app.state`` through the dependency functions
below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import httpx
import structlog
from fastapi import Request, WebSocket
from openai import AsyncOpenAI

from api.llm.generation import GenerationClient
from api.orchestrators.conversation import ConversationOrchestrator
from api.retrieval import EmbeddingClient, MilvusClient, RetrievalEngine
from libs.caching.redis_client import close_redis_client, create_redis_client
from libs.common.errors import ConfigurationError
from libs.common.settings import Settings
from libs.memory.conversation_store import ConversationStore

logger = structlog.get_logger(__name__)


class ConnectionTracker:
    """Counts open streaming connections for the health endpoint."""

    def __init__(self) -> None:
        self.active = 0

    def opened(self) -> None:
        self.active += 1

    def closed(self) -> None:
        self.active = max(0, self.active - 1)


@dataclass
class ChatServices:
    """Shared handles and the orchestrator that uses them."""

    orchestrator: ConversationOrchestrator
    redis: Any = None
    connections: ConnectionTracker = field(default_factory=ConnectionTracker)
    _closers: List[Callable[[], Any]] = field(default_factory=list)

    @classmethod
    async def start(cls, settings: Settings) -> "ChatServices":
        """
        Connect to every collaborator and build the orchestrator.

        Raises:
            ConfigurationError: If credentials are missing or the vector index
                does not match the embedding configuration
        """
        missing = settings.missing_credentials()
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        redis_client = await create_redis_client(settings.redis_url, use_fake=settings.app_env == "test")
        http = httpx.AsyncClient(timeout=httpx.Timeout(30.0))
        openai_client = AsyncOpenAI(api_key=settings.generation_api_key)

        services: Optional[ChatServices] = None
        try:
            milvus = MilvusClient(
                http,
                endpoint=settings.milvus_endpoint,
                token=settings.milvus_token,
                collection_name=settings.milvus_collection_name,
            )
            await milvus.connect(expected_dimensions=settings.embedding_dimensions)

            retrieval = RetrievalEngine(
                EmbeddingClient(
                    http,
                    api_key=settings.embedding_api_key,
                    model=settings.embedding_model,
                    dimensions=settings.embedding_dimensions,
                ),
                milvus,
                top_k=settings.search_top_k,
            )
            generation = GenerationClient(
                openai_client,
                model=settings.generation_model,
                temperature=settings.generation_temperature,
                max_tokens=settings.generation_max_tokens,
            )
            store = ConversationStore(
                redis_client,
                ttl_seconds=settings.history_ttl_seconds,
                max_turns=settings.max_history_turns,
            )
            services = cls(
                orchestrator=ConversationOrchestrator(store, retrieval, generation),
                redis=redis_client,
                _closers=[http.aclose, openai_client.close, lambda: close_redis_client(redis_client)],
            )
            logger.info("Chat services started", collection=settings.milvus_collection_name)
            return services
        finally:
            if services is None:
                await http.aclose()
                await openai_client.close()
                await close_redis_client(redis_client)

    async def close(self) -> None:
        """Release every handle; failures are logged, not raised."""
        for closer in self._closers:
            try:
                await closer()
            except Exception as e:
                logger.warning("Error closing service handle", error=str(e))
        self._closers.clear()
        logger.info("Chat services closed")


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.services.orchestrator


def get_socket_services(websocket: WebSocket) -> ChatServices:
    return websocket.app.state.services
