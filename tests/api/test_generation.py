"""
Tests for answer generation.

Covers:
- Buffered answers, apology on failure, fallback on empty output
- Streamed chunks in order, single fallback chunk on mid-stream failure
- Single-use streams and early close
"""

import pytest

from api.llm.generation import (
    EMPTY_ANSWER,
    GENERATION_ERROR_ANSWER,
    STREAM_FALLBACK_CHUNK,
    BufferedAnswer,
    GenerationClient,
)


async def _collect(answer):
    return [chunk async for chunk in answer]


class TestBufferedGeneration:
    @pytest.mark.asyncio
    async def test_generate_returns_text(self, fake_openai):
        client = GenerationClient(fake_openai, model="gpt-4o-mini", temperature=0.2, max_tokens=100)

        answer = await client.generate("prompt text")

        assert answer == BufferedAnswer(text="Chip stocks surged on earnings.")
        call = fake_openai.calls[0]
        assert call["model"] == "gpt-4o-mini"
        assert call["temperature"] == 0.2
        assert call["max_tokens"] == 100
        assert call["messages"] == [{"role": "user", "content": "prompt text"}]
        assert "stream" not in call

    @pytest.mark.asyncio
    async def test_failure_returns_apology(self, fake_openai):
        fake_openai.error = RuntimeError("rate limited")

        answer = await GenerationClient(fake_openai).generate("prompt")

        assert answer.text == GENERATION_ERROR_ANSWER

    @pytest.mark.asyncio
    async def test_blank_output_is_replaced(self, fake_openai):
        fake_openai.text = "   "

        answer = await GenerationClient(fake_openai).generate("prompt")

        assert answer.text == EMPTY_ANSWER


class TestStreamingGeneration:
    @pytest.mark.asyncio
    async def test_chunks_in_order(self, fake_openai):
        answer = GenerationClient(fake_openai).stream("prompt")

        assert await _collect(answer) == ["Chip ", "stocks ", "surged."]
        assert fake_openai.calls[0]["stream"] is True
        assert fake_openai.streams[0].closed

    @pytest.mark.asyncio
    async def test_nothing_requested_before_iteration(self, fake_openai):
        GenerationClient(fake_openai).stream("prompt")

        assert fake_openai.calls == []

    @pytest.mark.asyncio
    async def test_mid_stream_failure_emits_one_fallback(self, fake_openai):
        fake_openai.fail_after = 2

        chunks = await _collect(GenerationClient(fake_openai).stream("prompt"))

        assert chunks == ["Chip ", "stocks ", STREAM_FALLBACK_CHUNK]

    @pytest.mark.asyncio
    async def test_failure_before_first_chunk(self, fake_openai):
        fake_openai.error = RuntimeError("bad gateway")

        chunks = await _collect(GenerationClient(fake_openai).stream("prompt"))

        assert chunks == [STREAM_FALLBACK_CHUNK]

    @pytest.mark.asyncio
    async def test_empty_stream_yields_placeholder_answer(self, fake_openai):
        fake_openai.chunks = []

        chunks = await _collect(GenerationClient(fake_openai).stream("prompt"))

        assert chunks == [EMPTY_ANSWER]

    @pytest.mark.asyncio
    async def test_stream_is_single_use(self, fake_openai):
        answer = GenerationClient(fake_openai).stream("prompt")
        await _collect(answer)

        with pytest.raises(RuntimeError):
            await _collect(answer)

    @pytest.mark.asyncio
    async def test_aclose_stops_generation(self, fake_openai):
        answer = GenerationClient(fake_openai).stream("prompt")

        async for chunk in answer:
            assert chunk == "Chip "
            break
        await answer.aclose()

        assert fake_openai.streams[0].closed
