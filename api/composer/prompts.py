"""
Prompt construction for the news assistant.

A single plain-text prompt is assembled from:
- Fixed assistant rules
- An intent-specific addendum (list/summary, details, links)
- The titles and links of the retrieved articles
- The last few conversation turns
- The retrieved news context
- The current question

The prompt is sent verbatim to the generation model; nothing parses it afterwards.
"""

from typing import Dict, List, Optional, Sequence

from langchain_core.prompts import PromptTemplate

from api.orchestrators.intent import Intent
from libs.models.conversation import RetrievedDoc, Turn

# ==============================================================================
# FIXED INSTRUCTIONS
# ==============================================================================

NEWS_ASSISTANT_RULES = """You are a helpful news assistant chatbot. Answer questions based on the provided news context and previous conversation.

CRITICAL RULES:
1. ALWAYS provide a response - NEVER return empty text
2. If the context doesn't fully answer the question, provide what information you do have
3. Write in a natural, conversational tone (like you're chatting with a friend)
4. Keep responses concise but informative (2-4 sentences unless asked for details)
5. DO NOT use bullet points, asterisks, or markdown formatting
6. Reference previous conversation when relevant
7. If you're unsure, say so and offer what you do know"""

INTENT_ADDENDA: Dict[Intent, str] = {
    Intent.LIST: (
        "The user wants an overview of several stories. Give a concise summary that covers "
        "multiple stories from the context, one or two sentences each, in flowing prose."
    ),
    Intent.SUMMARY: (
        "The user wants a quick summary. Give a concise summary that covers the main stories "
        "from the context, one or two sentences each, in flowing prose."
    ),
    Intent.DETAILS: (
        "The user wants more depth. Elaborate on the most relevant story with the specific "
        "facts, names and figures available in the context."
    ),
    Intent.LINKS: (
        "The user is asking for sources. Naturally mention the article titles and their links "
        "from the available articles list so the user can read more."
    ),
}

NO_CONTEXT_MARKER = "No relevant news articles found."

# Conversation turns rendered into the prompt.
PROMPT_HISTORY_TURNS = 3

NEWS_ANSWER_TEMPLATE = PromptTemplate.from_template(
    """{rules}
{intent_instructions}{article_links}{conversation}
News Context:
{context}

Current User Question: {query}

Response (in plain conversational text):"""
)


def build_context(docs: Sequence[RetrievedDoc]) -> str:
    """Join document texts into the context block, blank-line separated."""
    return "\n\n".join(doc.text for doc in docs if doc.text)


def render_article_links(docs: Sequence[RetrievedDoc]) -> str:
    """``title: link`` lines for every document that has a link."""
    lines = [f"{doc.title or 'Untitled'}: {doc.link}" for doc in docs if doc.link]
    if not lines:
        return ""
    return "\nAvailable articles:\n" + "\n".join(lines) + "\n"


def render_conversation(history: Sequence[Turn], max_turns: int = PROMPT_HISTORY_TURNS) -> str:
    """Alternating ``User:``/``Assistant:`` lines for the most recent turns."""
    recent = list(history)[-max_turns:] if max_turns else []
    if not recent:
        return ""
    lines: List[str] = []
    for turn in recent:
        lines.append(f"User: {turn.user}")
        lines.append(f"Assistant: {turn.bot}")
    return "\nPrevious conversation:\n" + "\n".join(lines) + "\n"


def compose_prompt(
    query: str,
    context: str,
    history: Sequence[Turn],
    intent: Intent,
    docs: Sequence[RetrievedDoc],
    rules: Optional[str] = None,
) -> str:
    """
    Assemble the generation prompt.

    Args:
        query: The user's current question (as typed, not the rewritten query)
        context: Joined document texts, see ``build_context``
        history: Prior turns; only the last three are rendered
        intent: Classified intent of the query
        docs: Documents behind ``context``, used for the article links list
        rules: Override for the fixed assistant rules

    Returns:
        Prompt text
    """
    addendum = INTENT_ADDENDA.get(intent)
    return NEWS_ANSWER_TEMPLATE.format(
        rules=rules or NEWS_ASSISTANT_RULES,
        intent_instructions=f"\n{addendum}\n" if addendum else "",
        article_links=render_article_links(docs),
        conversation=render_conversation(history),
        context=context or NO_CONTEXT_MARKER,
        query=query,
    )
