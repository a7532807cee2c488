"""
Context formatting for answer synthesis.

Renders search hits into the numbered context block handed to the LLM,
and into the raw listing shown when no LLM is available.
"""

from typing import Dict, List, Optional, Sequence

from ..common.prompts import DEFAULT_SYSTEM_PROMPT
from ..common.schemas import SearchHit

NO_CONTEXT = "No relevant memories found."
BLOCK_SEPARATOR = "\n\n---\n\n"


def format_context(hits: Sequence[SearchHit]) -> str:
    if not hits:
        return NO_CONTEXT

    blocks = []
    for i, hit in enumerate(hits, 1):
        parts = [f"[Memory {i}]"]
        if hit.title:
            parts.append(f"Title: {hit.title}")
        if hit.label:
            parts.append(f"Category: {hit.label}")
        parts.append(f"Content: {hit.snippet}")
        blocks.append("\n".join(parts))
    return BLOCK_SEPARATOR.join(blocks)


def build_messages(
    question: str,
    hits: Sequence[SearchHit],
    system_prompt: Optional[str] = None,
) -> List[Dict[str, str]]:
    """
    Build the two-message chat prompt for synthesis.

    Args:
        question: User question, passed through verbatim
        hits: Context hits in rank order
        system_prompt: Overrides the default persona prompt when given

    Returns:
        [system, user] messages
    """
    context = format_context(hits)
    return [
        {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Here is the relevant context from my agent memory:\n\n{context}\n\nQuestion: {question}",
        },
    ]


def format_context_only(hits: Sequence[SearchHit]) -> str:
    """Numbered raw context, used when no answer could be synthesized."""
    return "\n\n".join(f"**[{i}] {hit.title}**\n{hit.snippet}" for i, hit in enumerate(hits, 1))
