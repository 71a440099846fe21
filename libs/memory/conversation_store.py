"""
Conversation history store backed by Redis.

Stores each session's turns for:
- Replaying history to a reconnecting client
- Follow-up query rewriting
- Reusing the documents shown in the previous answer

One key per session (``chat:{session_id}``) holding a JSON array of turns,
with a sliding TTL refreshed on every write and a cap on retained turns.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import redis.asyncio as redis
import structlog

from libs.common.errors import HistorySerializationError, UpstreamUnavailableError
from libs.memory.serialization import dump_history, load_history
from libs.models.conversation import DocRef, Turn

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 86400


class ConversationStore:
    """
    Typed read/write access to per-session conversation history.

    Every read-modify-write cycle runs under a per-session ``asyncio.Lock``
    so two messages on the same session cannot overwrite each other's turn.
    The lock is process-local.

    Usage:
        store = ConversationStore(redis_client, ttl_seconds=86400)
        await store.append_turn(session_id, Turn(user="Hi", bot="Hello"))
        history = await store.get_history(session_id)
        await store.clear_session(session_id)
    """

    KEY_PREFIX = "chat"

    def __init__(
        self,
        redis_client: redis.Redis,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_turns: int = 50,
    ):
        """
        Initialize the store.

        Args:
            redis_client: Async Redis client (``decode_responses=True``)
            ttl_seconds: Expiry applied on every write
            max_turns: Most recent turns kept per session, 0 for unbounded
        """
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.max_turns = max_turns
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    @classmethod
    def key_for(cls, session_id: str) -> str:
        return f"{cls.KEY_PREFIX}:{session_id}"

    @asynccontextmanager
    async def session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize history mutations for one session."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_holders[session_id] = self._lock_holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[session_id] -= 1
            if self._lock_holders[session_id] == 0:
                del self._lock_holders[session_id]
                del self._locks[session_id]

    async def get_history(self, session_id: str) -> List[Turn]:
        """
        Load a session's turns in chronological order.

        Malformed stored history is logged and read as empty.

        Raises:
            UpstreamUnavailableError: If Redis cannot be read
        """
        key = self.key_for(session_id)
        try:
            raw = await self.redis.get(key)
        except redis.RedisError as e:
            raise UpstreamUnavailableError("redis", str(e)) from e

        try:
            return load_history(raw)
        except HistorySerializationError as e:
            logger.warning("Discarding unreadable session history", session_id=session_id, error=str(e))
            return []

    async def save_history(self, session_id: str, turns: List[Turn]) -> None:
        """Overwrite a session's history and refresh its TTL."""
        if self.max_turns and len(turns) > self.max_turns:
            turns = turns[-self.max_turns:]

        key = self.key_for(session_id)
        try:
            await self.redis.set(key, dump_history(turns), ex=self.ttl_seconds)
        except redis.RedisError as e:
            raise UpstreamUnavailableError("redis", str(e)) from e

        logger.debug("Session history saved", session_id=session_id, turns=len(turns))

    async def append_turn(self, session_id: str, turn: Turn) -> List[Turn]:
        """
        Append a turn to the session history.

        Returns:
            The full history as persisted, ending with ``turn``
        """
        async with self.session_lock(session_id):
            history = await self.get_history(session_id)
            history.append(turn)
            await self.save_history(session_id, history)

        if self.max_turns and len(history) > self.max_turns:
            history = history[-self.max_turns:]
        return history

    async def complete_turn(
        self,
        session_id: str,
        placeholder: Turn,
        bot: str,
        relevant_docs: Optional[List[DocRef]] = None,
    ) -> Turn:
        """
        Fill in the answer of a previously appended placeholder turn.

        The placeholder is matched by timestamp and user text, so turns appended
        concurrently after it are left alone. If it is no longer stored (expired,
        cleared or trimmed) the completed turn is appended instead.

        Returns:
            The completed turn
        """
        completed = placeholder.model_copy(update={"bot": bot, "relevant_docs": relevant_docs})

        async with self.session_lock(session_id):
            history = await self.get_history(session_id)
            for index in range(len(history) - 1, -1, -1):
                stored = history[index]
                if stored.timestamp == placeholder.timestamp and stored.user == placeholder.user:
                    history[index] = completed
                    break
            else:
                logger.warning("Placeholder turn not found, appending completed turn", session_id=session_id)
                history.append(completed)
            await self.save_history(session_id, history)

        return completed

    async def clear_session(self, session_id: str) -> None:
        """
        Delete a session's history. Deleting a missing session is not an error.

        Args:
            session_id: Session identifier
        """
        key = self.key_for(session_id)
        try:
            await self.redis.delete(key)
        except redis.RedisError as e:
            raise UpstreamUnavailableError("redis", str(e)) from e

        logger.info("Session cleared", session_id=session_id)
