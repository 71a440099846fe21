"""
Pytest configuration and fixtures for Newsline tests.

Provides shared fixtures for:
- Mock Redis client (fakeredis)
- Fake OpenAI chat client (buffered and streamed completions)
- Fake retrieval engine with canned news documents
- A conversation store / orchestrator wired to the fakes
"""

import os
from types import SimpleNamespace
from typing import List, Optional

import pytest

from libs.models.conversation import RetrievedDoc


NEWS_DOCS = [
    RetrievedDoc(
        text="Chipmaker shares rallied after record quarterly earnings.",
        score=0.91,
        title="Chip stocks surge",
        link="https://news.example.com/chips",
    ),
    RetrievedDoc(
        text="The central bank held interest rates steady for a third month.",
        score=0.84,
        title="Rates on hold",
        link="https://news.example.com/rates",
    ),
]


def _chunk_event(content: Optional[str]):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeCompletionStream:
    """Async-iterable stand-in for an OpenAI completion stream."""

    def __init__(self, chunks: List[str], fail_after: Optional[int] = None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True
        return False

    def __aiter__(self):
        return self._events()

    async def _events(self):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise RuntimeError("connection reset by model")
            yield _chunk_event(chunk)


class FakeCompletions:
    def __init__(self, owner: "FakeOpenAI"):
        self.owner = owner

    async def create(self, **kwargs):
        self.owner.calls.append(kwargs)
        if self.owner.error is not None:
            raise self.owner.error
        if kwargs.get("stream"):
            stream = FakeCompletionStream(self.owner.chunks, fail_after=self.owner.fail_after)
            self.owner.streams.append(stream)
            return stream
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.owner.text))])


class FakeOpenAI:
    """
    Minimal AsyncOpenAI replacement.

    Attributes:
        text: Content returned by buffered completions
        chunks: Deltas returned by streamed completions
        fail_after: Raise after this many streamed chunks (None = never)
        error: Raise this from ``create`` instead of answering
    """

    def __init__(self, text: str = "Chip stocks surged on earnings.", chunks: Optional[List[str]] = None):
        self.text = text
        self.chunks = chunks if chunks is not None else ["Chip ", "stocks ", "surged."]
        self.fail_after: Optional[int] = None
        self.error: Optional[Exception] = None
        self.calls: List[dict] = []
        self.streams: List[FakeCompletionStream] = []
        self.chat = SimpleNamespace(completions=FakeCompletions(self))

    @property
    def prompts(self) -> List[str]:
        return [call["messages"][0]["content"] for call in self.calls]

    async def close(self):
        pass


class FakeRetrieval:
    """Records queries and returns canned documents."""

    def __init__(self, docs: Optional[List[RetrievedDoc]] = None):
        self.docs = list(NEWS_DOCS) if docs is None else docs
        self.queries: List[str] = []

    async def retrieve(self, query: str) -> List[RetrievedDoc]:
        self.queries.append(query)
        return list(self.docs)


@pytest.fixture
async def redis_client():
    """
    Provide fakeredis client for testing.

    This avoids requiring actual Redis server during tests.
    """
    from fakeredis import aioredis as fakeredis

    client = fakeredis.FakeRedis(decode_responses=True)

    yield client

    # Cleanup - flush all data after test
    await client.flushdb()
    await client.aclose()


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def fake_retrieval():
    return FakeRetrieval()


@pytest.fixture
def conversation_store(redis_client):
    from libs.memory.conversation_store import ConversationStore

    return ConversationStore(redis_client, ttl_seconds=86400, max_turns=50)


@pytest.fixture
def orchestrator(conversation_store, fake_retrieval, fake_openai):
    from api.llm.generation import GenerationClient
    from api.orchestrators.conversation import ConversationOrchestrator

    return ConversationOrchestrator(conversation_store, fake_retrieval, GenerationClient(fake_openai))


@pytest.fixture
def chat_services(fake_openai, fake_retrieval):
    """
    Services for the FastAPI app, backed by fakes.

    The fakeredis client is created here (not in the async ``redis_client``
    fixture) so it is only ever used from the TestClient's event loop.
    """
    from fakeredis import aioredis as fakeredis

    from api.dependencies import ChatServices
    from api.llm.generation import GenerationClient
    from api.orchestrators.conversation import ConversationOrchestrator
    from libs.memory.conversation_store import ConversationStore

    client = fakeredis.FakeRedis(decode_responses=True)
    store = ConversationStore(client, ttl_seconds=86400, max_turns=50)
    orchestrator = ConversationOrchestrator(store, fake_retrieval, GenerationClient(fake_openai))
    return ChatServices(orchestrator=orchestrator, redis=client)


@pytest.fixture
def client(chat_services):
    """TestClient with the lifespan running around each test."""
    from fastapi.testclient import TestClient

    from api.main import create_app
    from libs.common.settings import Settings

    app = create_app(settings=Settings(app_env="test"), services=chat_services)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    # Ensure we're in test mode
    monkeypatch.setenv("NEWSLINE_APP_ENV", "test")

    # Keep developer credentials out of settings under test
    for name in ("OPENAI_API_KEY", "EMBEDDING_API_KEY", "GENERATION_API_KEY", "MILVUS_ENDPOINT", "MILVUS_TOKEN"):
        monkeypatch.delenv(name, raising=False)

    if not os.getenv("REDIS_URL"):
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/9")
