"""LLM module for answer generation through the OpenAI chat API."""

from .generation import BufferedAnswer, GenerationClient, StreamingAnswer

__all__ = ["BufferedAnswer", "GenerationClient", "StreamingAnswer"]
