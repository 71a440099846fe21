"""
Conversation memory for the news chat service.

Provides:
- Conversation store (per-session turn history in Redis)
- History serialization (JSON turn arrays)
"""

from libs.memory.conversation_store import ConversationStore

__all__ = ["ConversationStore"]
