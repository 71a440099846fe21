"""
Conversation orchestrator for the news assistant.

Sequences one user message through the pipeline:

    load history -> rewrite query -> retrieve (or reuse) documents
    -> classify intent -> compose prompt -> generate -> persist turn

for both the buffered HTTP surface (``handle_chat``) and the streaming socket
surface (``stream_turn``). All history writes go through the conversation
store, which serializes read-modify-write cycles per session.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence, Tuple

import structlog

from api.composer.prompts import PROMPT_HISTORY_TURNS, build_context, compose_prompt
from api.llm.generation import STREAM_FALLBACK_CHUNK, GenerationClient, StreamingAnswer
from api.models import StreamEvent
from api.orchestrators.intent import classify_intent
from api.orchestrators.query_rewriter import rewrite_query
from api.retrieval import RetrievalEngine
from libs.common.errors import QueryValidationError
from libs.memory.conversation_store import ConversationStore
from libs.models.conversation import DocRef, RetrievedDoc, Turn

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChatResult:
    """Outcome of a buffered chat turn."""

    session_id: str
    response: str
    documents_found: int


class ConversationOrchestrator:
    """
    Runs chat turns against the store, retrieval and generation services.

    Usage:
        orchestrator = ConversationOrchestrator(store, retrieval, generation)
        result = await orchestrator.handle_chat(None, "What's happening in tech?")
        async for event in orchestrator.stream_turn(session_id, "Tell me more"):
            await send(event)
    """

    def __init__(self, store: ConversationStore, retrieval: RetrievalEngine, generation: GenerationClient):
        self.store = store
        self.retrieval = retrieval
        self.generation = generation

    async def load_history(self, session_id: str) -> List[Turn]:
        return await self.store.get_history(session_id)

    async def clear_session(self, session_id: str) -> None:
        await self.store.clear_session(session_id)

    async def _prepare_prompt(self, query: str, prior_turns: Sequence[Turn]) -> Tuple[str, List[RetrievedDoc]]:
        """Rewrite, retrieve or reuse, classify and compose for one query."""
        recent = list(prior_turns)[-PROMPT_HISTORY_TURNS:]
        rewrite = rewrite_query(query, recent)

        if rewrite.reuses_documents:
            docs = [ref.to_retrieved() for ref in rewrite.reuse_docs]
        else:
            docs = await self.retrieval.retrieve(rewrite.query)

        intent = classify_intent(query)
        logger.info(
            "Prompt inputs ready",
            intent=intent.value,
            documents=len(docs),
            reused_documents=rewrite.reuses_documents,
            history_turns=len(recent),
        )

        prompt = compose_prompt(
            query=query,
            context=build_context(docs),
            history=recent,
            intent=intent,
            docs=docs,
        )
        return prompt, docs

    async def handle_chat(self, session_id: Optional[str], query: Optional[str]) -> ChatResult:
        """
        Answer one message on the buffered surface.

        Args:
            session_id: Existing session id, or None to start a new session
            query: User question

        Returns:
            ChatResult with the (possibly new) session id, answer and document count

        Raises:
            QueryValidationError: If the query is missing or blank (before any I/O)
        """
        if query is None or not query.strip():
            raise QueryValidationError("Query is required")

        if not session_id:
            session_id = str(uuid.uuid4())
            logger.info("New session created", session_id=session_id)

        start_time = time.time()
        logger.info("Processing chat query", session_id=session_id, query=query[:100])

        history = await self.store.get_history(session_id)
        prompt, docs = await self._prepare_prompt(query, history)
        answer = await self.generation.generate(prompt)

        await self.store.append_turn(
            session_id,
            Turn(user=query, bot=answer.text, relevant_docs=DocRef.from_retrieved(docs)),
        )

        logger.info(
            "Chat query processed",
            session_id=session_id,
            documents_found=len(docs),
            answer_length=len(answer.text),
            response_time_ms=int((time.time() - start_time) * 1000),
        )
        return ChatResult(session_id=session_id, response=answer.text, documents_found=len(docs))

    async def stream_turn(self, session_id: str, content: str) -> AsyncIterator[StreamEvent]:
        """
        Answer one message on the streaming surface.

        Yields ``streamStart``, one ``token`` per generated chunk, then
        ``responseEnd``. On any failure a single apology ``token`` is yielded
        before ``responseEnd``. The placeholder turn is persisted before
        generation starts and completed with the streamed text afterwards,
        also when the consumer stops iterating early.

        Args:
            session_id: Session the connection belongs to
            content: User message (non-blank)
        """
        placeholder = Turn(user=content, bot="")
        accumulated: List[str] = []
        docs: List[RetrievedDoc] = []
        answer: Optional[StreamingAnswer] = None
        persisted = False
        start_time = time.time()

        try:
            try:
                history = await self.store.append_turn(session_id, placeholder)
                prior_turns = history[:-1]

                prompt, docs = await self._prepare_prompt(content, prior_turns)
                answer = self.generation.stream(prompt)

                yield StreamEvent.stream_start()
                async for chunk in answer:
                    accumulated.append(chunk)
                    yield StreamEvent.token(chunk)
            except Exception as e:
                logger.error(
                    "Streaming turn failed",
                    session_id=session_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                accumulated.append(STREAM_FALLBACK_CHUNK)
                yield StreamEvent.token(STREAM_FALLBACK_CHUNK)

            await self._complete(session_id, placeholder, "".join(accumulated), docs)
            persisted = True

            logger.info(
                "Streamed response complete",
                session_id=session_id,
                chars=sum(len(chunk) for chunk in accumulated),
                response_time_ms=int((time.time() - start_time) * 1000),
            )
            yield StreamEvent.response_end()
        finally:
            if answer is not None:
                await answer.aclose()
            if not persisted:
                # Consumer went away mid-stream
                logger.info("Streaming turn abandoned", session_id=session_id, chunks=len(accumulated))
                await self._complete(session_id, placeholder, "".join(accumulated) or STREAM_FALLBACK_CHUNK, docs)

    async def _complete(self, session_id: str, placeholder: Turn, bot: str, docs: List[RetrievedDoc]) -> None:
        try:
            await self.store.complete_turn(session_id, placeholder, bot, DocRef.from_retrieved(docs))
        except Exception as e:
            logger.error("Failed to persist streamed answer", session_id=session_id, error=str(e))
