"""Context-aware query rewriting for follow-up questions.

Two cheap lexical checks run before retrieval:

1. Reference resolution: a query that points back at the previous answer
   ("the second one", "tell me about that") reuses the documents cached on the
   last turn, so the user sees the same articles they were just shown.
2. Follow-up expansion: a query asking for more/other/details is prefixed with
   the user's recent messages so retrieval keeps the earlier topic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

import structlog

from libs.models.conversation import DocRef, Turn

logger = structlog.get_logger(__name__)

# Words that refer back to something already shown. Matched as whole words,
# unlike a substring match, so "with" or "bitcoin" are not references.
REFERENCE_TERMS = ("first", "second", "that", "it", "more", "details", "about", "above")
REFERENCE_PATTERN = re.compile(r"\b(" + "|".join(REFERENCE_TERMS) + r")\b", re.IGNORECASE)

# Substrings that mark a query as continuing the current topic.
FOLLOW_UP_KEYWORDS = (
    "more",
    "tell me more",
    "elaborate",
    "details",
    "explain",
    "what about",
    "how about",
    "links",
    "source",
    "article",
    "continue",
    "go on",
    "expand",
    "list",
    "show me",
    "another",
    "other",
    "else",
    "different",
)

# User messages prepended to an expanded follow-up query.
FOLLOW_UP_CONTEXT_TURNS = 3


@dataclass(frozen=True)
class RewriteResult:
    """Outcome of query rewriting.

    ``reuse_docs`` is set when retrieval should be skipped in favour of the
    documents cached on the previous turn.
    """

    query: str
    reuse_docs: Optional[List[DocRef]] = None

    @property
    def reuses_documents(self) -> bool:
        return self.reuse_docs is not None


def is_reference(query: str) -> bool:
    return REFERENCE_PATTERN.search(query) is not None


def is_follow_up(query: str) -> bool:
    query_lower = query.lower()
    return any(keyword in query_lower for keyword in FOLLOW_UP_KEYWORDS)


def build_enhanced_query(current_query: str, history: Sequence[Turn]) -> str:
    """Join the last few user messages and the current query, oldest first."""
    recent = [
        turn.user
        for turn in history[-FOLLOW_UP_CONTEXT_TURNS:]
        if turn.user and turn.user.strip()
    ]
    return " ".join([*recent, current_query])


def rewrite_query(current_query: str, history: Sequence[Turn]) -> RewriteResult:
    """
    Decide how the current query should be retrieved.

    Args:
        current_query: The user's message as typed
        history: Prior turns of the session, chronological

    Returns:
        RewriteResult with either cached documents to reuse, an expanded
        query, or the original query unchanged
    """
    if not history:
        return RewriteResult(query=current_query)

    last_turn = history[-1]
    if is_reference(current_query) and last_turn.relevant_docs:
        logger.info("Reusing documents from previous turn", docs=len(last_turn.relevant_docs))
        return RewriteResult(query=current_query, reuse_docs=list(last_turn.relevant_docs))

    if is_follow_up(current_query):
        enhanced = build_enhanced_query(current_query, history)
        logger.info("Enhanced follow-up query", query=enhanced[:200])
        return RewriteResult(query=enhanced)

    logger.debug("Query used as-is", query=current_query[:200])
    return RewriteResult(query=current_query)
