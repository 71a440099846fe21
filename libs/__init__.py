"""Newsline shared libraries.

This package contains reusable components:
- common: Configuration and the error taxonomy
- caching: Redis client lifecycle
- memory: Conversation history store and its serialization
- models: Conversation records (turns, document snapshots, search hits)
"""
