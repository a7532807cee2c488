"""
Synthesizer

LLM-based answer synthesis from memory search hits. Without a provider
the caller falls back to listing the raw context.
"""

import logging
from typing import List, Optional

from ..common.llm_client import LLMProvider
from ..common.schemas import AskResult, SearchHit
from .context import build_messages

logger = logging.getLogger("memvid.retriever.synthesizer")

MAX_FOOTER_SOURCES = 3


class Synthesizer:
    """
    Synthesizes answers from search hits using the configured LLM provider.

    Provider errors propagate; the tool layer decides on the fallback.
    """

    def __init__(self, provider: Optional[LLMProvider] = None):
        self._provider = provider

    @property
    def has_llm(self) -> bool:
        return self._provider is not None

    async def synthesize(
        self,
        question: str,
        hits: List[SearchHit],
        system_prompt: Optional[str] = None,
    ) -> Optional[AskResult]:
        """
        Answer a question from context hits.

        Returns None when no provider is configured.
        """
        if self._provider is None:
            return None

        messages = build_messages(question, hits, system_prompt)
        logger.info("Synthesizing answer with %s from %d context entries", self._provider.name, len(hits))
        generation = await self._provider.generate(messages)

        return AskResult(
            answer=generation.answer,
            context=list(hits),
            model=generation.model,
            provider=generation.provider,
            tokens_used=generation.tokens_used,
        )


def format_answer_for_display(result: AskResult) -> str:
    """Render an answer with its sources and model footer."""
    lines = [result.answer, "", "---"]
    sources = (result.context or [])[:MAX_FOOTER_SOURCES]
    if sources:
        listed = ", ".join(f"[{i}] {hit.title}" for i, hit in enumerate(sources, 1))
        lines.append(f"*Sources: {listed}*")
    if result.model:
        lines.append(f"*Model: {result.model} ({result.provider})*")
    return "\n".join(lines)
