"""Prompt templates shared by the retriever and the host model bridge."""

from typing import Dict, List, Sequence

# Default persona for answer synthesis
DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant with access to the user's agent memory.
Answer questions based on the provided context from memory.
If the context doesn't contain relevant information, say so clearly.
Be concise and accurate. Cite specific memories when relevant."""

# Query rewriting prompt, used only when every direct search tier found nothing
REWRITE_SYSTEM_PROMPT = """You are a search query optimizer. Given a user question, generate alternative search terms that might find relevant information in a memory database.

Rules:
1. Extract key concepts, nouns, and technical terms
2. Include synonyms and related terms (e.g., "konzentriertes Arbeiten" -> "deep work", "focus", "produktivität")
3. Include both German and English variations if applicable
4. Return ONLY a JSON array of search terms, nothing else
5. Maximum 8 terms, prioritize the most likely matches"""

REWRITE_USER_PROMPT = """Question: "{question}"
Previously tried search terms (no results): {tried}

Generate alternative search terms that might find relevant information. Return ONLY a JSON array."""


def build_rewrite_messages(question: str, tried_keywords: Sequence[str]) -> List[Dict[str, str]]:
    """Chat messages asking a model for alternative search terms."""
    tried = ", ".join(tried_keywords) if tried_keywords else "(none)"
    return [
        {"role": "system", "content": REWRITE_SYSTEM_PROMPT},
        {"role": "user", "content": REWRITE_USER_PROMPT.format(question=question, tried=tried)},
    ]
