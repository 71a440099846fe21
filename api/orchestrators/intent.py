"""Heuristic intent classification for response shaping."""

from __future__ import annotations

import re
from enum import Enum
from typing import Pattern, Tuple


class Intent(str, Enum):
    """What shape of answer the user is asking for."""

    LINKS = "links"
    DETAILS = "details"
    SUMMARY = "summary"
    LIST = "list"
    GENERAL = "general"


# Checked in order; the first match wins.
INTENT_PATTERNS: Tuple[Tuple[Intent, Pattern[str]], ...] = (
    (Intent.LINKS, re.compile(r"\b(link|url|source|article|read more)\b")),
    (Intent.DETAILS, re.compile(r"\b(more|detail|elaborate|explain|tell me more|expand)\b")),
    (Intent.SUMMARY, re.compile(r"\b(summary|summarize|brief|overview|quick)\b")),
    (Intent.LIST, re.compile(r"\b(list|show|give me|get|find)\b.*\b(news|articles|stories)\b")),
)


def classify_intent(query: str) -> Intent:
    """
    Classify a query into one of the fixed intents.

    Args:
        query: Raw user query

    Returns:
        The highest-priority matching intent, or ``Intent.GENERAL``
    """
    query_lower = query.lower()
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(query_lower):
            return intent
    return Intent.GENERAL
