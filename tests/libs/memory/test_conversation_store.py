"""
Tests for the conversation store (per-session history in Redis).

Tests verify:
- Append and read back turns in order
- Unknown and cleared sessions read as empty
- TTL (24 hours) refreshed on every write
- Malformed stored history reads as empty
- Retention cap keeps the newest turns
- Concurrent appends on one session are not lost
- Completing a streamed placeholder turn
"""

import asyncio
import json

import pytest

from libs.memory.conversation_store import ConversationStore
from libs.models.conversation import DocRef, Turn


@pytest.mark.asyncio
async def test_append_and_get_history(conversation_store):
    """Turns come back in the order they were appended."""

    await conversation_store.append_turn("s1", Turn(user="Hi", bot="Hello"))
    await conversation_store.append_turn("s1", Turn(user="Any tech news?", bot="Chip stocks rose."))

    history = await conversation_store.get_history("s1")

    assert [turn.user for turn in history] == ["Hi", "Any tech news?"]
    assert history[1].bot == "Chip stocks rose."


@pytest.mark.asyncio
async def test_unknown_session_is_empty(conversation_store):
    assert await conversation_store.get_history("never-seen") == []


@pytest.mark.asyncio
async def test_history_stored_under_session_key(conversation_store, redis_client):
    """History is a JSON array of camelCase turns under chat:{session_id}."""

    docs = [DocRef(id=1, title="Chip stocks surge", link="https://news.example.com/chips", text="...")]
    await conversation_store.append_turn("s1", Turn(user="Hi", bot="Hello", relevant_docs=docs))

    raw = await redis_client.get("chat:s1")
    stored = json.loads(raw)

    assert isinstance(stored, list)
    assert stored[0]["user"] == "Hi"
    assert stored[0]["relevantDocs"][0]["id"] == 1
    assert "timestamp" in stored[0]


@pytest.mark.asyncio
async def test_ttl_refreshed_on_write(conversation_store, redis_client):
    """Every write sets the 24 hour expiry again."""

    await conversation_store.append_turn("s1", Turn(user="Hi", bot="Hello"))
    await redis_client.expire("chat:s1", 10)

    await conversation_store.append_turn("s1", Turn(user="Again", bot="Hello again"))

    ttl = await redis_client.ttl("chat:s1")
    assert 86000 < ttl <= 86400, f"TTL should be ~24 hours, got {ttl}"


@pytest.mark.asyncio
async def test_clear_session(conversation_store):
    """Clearing removes the history; clearing twice is fine."""

    await conversation_store.append_turn("s1", Turn(user="Hi", bot="Hello"))

    await conversation_store.clear_session("s1")
    await conversation_store.clear_session("s1")

    assert await conversation_store.get_history("s1") == []


@pytest.mark.asyncio
async def test_malformed_history_reads_as_empty(conversation_store, redis_client):
    await redis_client.set("chat:s1", "{not json")
    assert await conversation_store.get_history("s1") == []

    await redis_client.set("chat:s1", json.dumps({"user": "not a list"}))
    assert await conversation_store.get_history("s1") == []


@pytest.mark.asyncio
async def test_malformed_history_is_replaced_on_next_write(conversation_store, redis_client):
    await redis_client.set("chat:s1", "garbage")

    await conversation_store.append_turn("s1", Turn(user="Hi", bot="Hello"))

    history = await conversation_store.get_history("s1")
    assert len(history) == 1


@pytest.mark.asyncio
async def test_retention_cap_keeps_newest(redis_client):
    """Only the most recent max_turns turns are kept."""

    store = ConversationStore(redis_client, ttl_seconds=60, max_turns=3)
    for i in range(5):
        await store.append_turn("s1", Turn(user=f"Message {i}", bot="ok"))

    history = await store.get_history("s1")

    assert [turn.user for turn in history] == ["Message 2", "Message 3", "Message 4"]


@pytest.mark.asyncio
async def test_zero_cap_is_unbounded(redis_client):
    store = ConversationStore(redis_client, ttl_seconds=60, max_turns=0)
    for i in range(60):
        await store.append_turn("s1", Turn(user=f"Message {i}", bot="ok"))

    assert len(await store.get_history("s1")) == 60


@pytest.mark.asyncio
async def test_concurrent_appends_are_not_lost(conversation_store):
    """Parallel writers on one session each land their turn."""

    await asyncio.gather(*[
        conversation_store.append_turn("s1", Turn(user=f"Message {i}", bot="ok"))
        for i in range(10)
    ])

    history = await conversation_store.get_history("s1")
    assert sorted(turn.user for turn in history) == sorted(f"Message {i}" for i in range(10))
    assert conversation_store._locks == {}, "Locks should be released once idle"


@pytest.mark.asyncio
async def test_complete_turn_fills_placeholder(conversation_store):
    placeholder = Turn(user="Tell me the news", bot="")
    await conversation_store.append_turn("s1", Turn(user="Hi", bot="Hello"))
    await conversation_store.append_turn("s1", placeholder)
    await conversation_store.append_turn("s1", Turn(user="Another tab", bot="Answer"))

    docs = [DocRef(id=1, title="Rates on hold", link="https://news.example.com/rates", text="...")]
    completed = await conversation_store.complete_turn("s1", placeholder, "Rates held steady.", docs)

    history = await conversation_store.get_history("s1")
    assert [turn.user for turn in history] == ["Hi", "Tell me the news", "Another tab"]
    assert history[1].bot == "Rates held steady."
    assert history[1].relevant_docs == docs
    assert history[1].timestamp == placeholder.timestamp
    assert history[2].bot == "Answer"
    assert completed.bot == "Rates held steady."


@pytest.mark.asyncio
async def test_complete_turn_after_clear_appends(conversation_store):
    """A placeholder cleared mid-stream is re-added with its answer."""

    placeholder = Turn(user="Tell me the news", bot="")
    await conversation_store.append_turn("s1", placeholder)
    await conversation_store.clear_session("s1")

    await conversation_store.complete_turn("s1", placeholder, "Rates held steady.")

    history = await conversation_store.get_history("s1")
    assert len(history) == 1
    assert history[0].bot == "Rates held steady."
