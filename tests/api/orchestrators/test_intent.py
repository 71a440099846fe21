"""Tests for heuristic intent classification."""

import pytest

from api.orchestrators.intent import Intent, classify_intent


@pytest.mark.parametrize("query,expected", [
    ("Send me the link to that story", Intent.LINKS),
    ("Which source reported it?", Intent.LINKS),
    ("Can you elaborate on the merger?", Intent.DETAILS),
    ("Tell me more", Intent.DETAILS),
    ("Give me a quick overview", Intent.SUMMARY),
    ("Show me the latest tech news", Intent.LIST),
    ("find articles on the election", Intent.LIST),
    ("What's happening in tech?", Intent.GENERAL),
    ("", Intent.GENERAL),
])
def test_classify_intent(query, expected):
    assert classify_intent(query) is expected


def test_links_outranks_summary():
    """A query matching both link and summary patterns is a links query."""
    assert classify_intent("quick summary with the article link please") is Intent.LINKS


def test_details_outranks_list():
    assert classify_intent("show me more news stories") is Intent.DETAILS


def test_classification_is_deterministic():
    query = "Give me a brief list of news about markets"
    assert len({classify_intent(query) for _ in range(20)}) == 1
