"""Pydantic models for conversation history.

These records are what the session store persists. Field aliases are the
camelCase names used on the wire and in the stored JSON.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class RetrievedDoc(BaseModel):
    """A scored search hit from the vector index. Never persisted as-is."""
    text: str = Field(..., description="Chunk text used as answer context.")
    score: float = Field(0.0, description="Similarity score, higher is more relevant.")
    title: str = Field("", description="Article title, empty when unknown.")
    link: str = Field("", description="Article URL, empty when unknown.")


class DocRef(BaseModel):
    """By-value snapshot of a retrieved document, cached on a turn for follow-ups."""
    id: int = Field(..., ge=1, description="1-based ordinal within its retrieval batch.")
    title: str = Field("", description="Article title.")
    link: str = Field("", description="Article URL.")
    text: str = Field("", description="Chunk text at retrieval time.")

    @classmethod
    def from_retrieved(cls, docs: List[RetrievedDoc]) -> List["DocRef"]:
        return [
            cls(id=index, title=doc.title, link=doc.link, text=doc.text)
            for index, doc in enumerate(docs, start=1)
        ]

    def to_retrieved(self) -> RetrievedDoc:
        return RetrievedDoc(text=self.text, score=0.0, title=self.title, link=self.link)


class Turn(BaseModel):
    """One user/assistant exchange within a session."""
    model_config = ConfigDict(populate_by_name=True)

    user: str = Field(..., description="The user's message.")
    bot: str = Field("", description="The assistant's answer; empty only while streaming.")
    relevant_docs: Optional[List[DocRef]] = Field(
        None, alias="relevantDocs", description="Documents used to answer, reused by follow-ups."
    )
    timestamp: str = Field(default_factory=utc_timestamp, description="ISO-8601 creation time.")

    @property
    def is_pending(self) -> bool:
        return self.bot == ""

    def to_wire(self) -> dict:
        """Render with camelCase keys, omitting absent documents."""
        return self.model_dump(by_alias=True, exclude_none=True)
