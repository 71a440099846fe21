"""Newsline chat API service.

This package contains the FastAPI application and the chat pipeline
behind it.

Main components:
- main.py: FastAPI application factory and health endpoints
- models.py: Pydantic models for requests, responses and socket events
- retrieval.py: embedding and vector search over the news index
- composer/prompts.py: prompt assembly for the news assistant
- llm/generation.py: buffered and streaming answer generation
- orchestrators/: query rewriting, intent classification and the
  conversation orchestrator
- routers/: HTTP chat/history endpoints and the WebSocket stream
"""

# Avoid importing heavy modules (e.g., FastAPI app) at package import time.
# Intentionally do not re-export runtime objects here.
__all__ = []
