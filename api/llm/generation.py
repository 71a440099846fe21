"""
Answer generation with the OpenAI chat completions API.

Two answer variants are produced:
- BufferedAnswer: the complete text, for the request/response surface
- StreamingAnswer: a lazy, single-use sequence of text chunks, for the socket surface

Neither path raises on model failure. The buffered path returns a fixed
apology; the streaming path emits one fallback chunk and ends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import structlog
from openai import AsyncOpenAI

logger = structlog.get_logger(__name__)

GENERATION_ERROR_ANSWER = "I encountered an error while generating a response. Please try again."
EMPTY_ANSWER = "I couldn't find anything to say about that. Could you rephrase your question?"
STREAM_FALLBACK_CHUNK = "Sorry, I encountered an error. Please try again."


@dataclass(frozen=True)
class BufferedAnswer:
    """A fully generated answer."""

    text: str


class StreamingAnswer:
    """
    A generated answer delivered as text chunks.

    The chunks can be iterated exactly once. ``aclose()`` stops generation
    early and releases the upstream connection.
    """

    def __init__(self, chunks: AsyncIterator[str]):
        self._chunks = chunks
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("StreamingAnswer can only be consumed once")
        self._consumed = True
        return self._chunks

    async def aclose(self) -> None:
        self._consumed = True
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()


class GenerationClient:
    """
    OpenAI chat-completions client for news answers.

    Usage:
        client = GenerationClient(AsyncOpenAI(api_key=...), model="gpt-4o-mini")
        answer = await client.generate(prompt)
        async for chunk in client.stream(prompt):
            ...
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 800,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _request_params(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def generate(self, prompt: str) -> BufferedAnswer:
        """
        Generate a complete answer.

        Args:
            prompt: Prompt text from the composer

        Returns:
            BufferedAnswer with non-empty text (a fixed apology on failure)
        """
        try:
            response = await self.client.chat.completions.create(**self._request_params(prompt))
        except Exception as e:
            logger.error("Generation failed", model=self.model, error=str(e), error_type=type(e).__name__)
            return BufferedAnswer(text=GENERATION_ERROR_ANSWER)

        text = _completion_text(response)
        if not text.strip():
            logger.warning("Generation returned empty text", model=self.model)
            return BufferedAnswer(text=EMPTY_ANSWER)

        logger.info("Answer generated", model=self.model, answer_length=len(text))
        return BufferedAnswer(text=text)

    def stream(self, prompt: str) -> StreamingAnswer:
        """Start a streamed answer. Nothing is requested until iteration begins."""
        return StreamingAnswer(self._stream_chunks(prompt))

    async def _stream_chunks(self, prompt: str) -> AsyncIterator[str]:
        produced = 0
        try:
            stream = await self.client.chat.completions.create(**self._request_params(prompt), stream=True)
            async with stream:
                async for event in stream:
                    if not event.choices:
                        continue
                    delta = event.choices[0].delta.content
                    if delta:
                        produced += 1
                        yield delta
        except Exception as e:
            logger.error(
                "Streaming generation failed",
                model=self.model,
                chunks_before_failure=produced,
                error=str(e),
                error_type=type(e).__name__,
            )
            yield STREAM_FALLBACK_CHUNK
            return

        if produced == 0:
            logger.warning("Streaming generation produced no text", model=self.model)
            yield EMPTY_ANSWER
            return

        logger.info("Streamed answer complete", model=self.model, chunks=produced)


def _completion_text(response: Any) -> str:
    """Extract the message text from a chat completion."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message: Optional[Any] = getattr(choices[0], "message", None)
    return getattr(message, "content", None) or ""
