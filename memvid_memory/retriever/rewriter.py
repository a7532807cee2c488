"""
Query Rewriter

Last-resort search tier: asks the LLM for alternative search terms
(synonyms, German/English translations) when keyword search found nothing.
"""

import logging
from typing import Optional, Sequence

from ..common.llm_client import LLMProvider
from ..common.llm_utils import parse_search_terms
from ..common.schemas import MAX_REWRITE_TERMS, QueryRewriteResult

logger = logging.getLogger("memvid.retriever.rewriter")


class QueryRewriter:
    """Produces alternative search terms via the configured LLM provider."""

    def __init__(self, provider: Optional[LLMProvider] = None):
        self._provider = provider

    @property
    def is_available(self) -> bool:
        return self._provider is not None

    async def rewrite(
        self,
        question: str,
        tried_keywords: Sequence[str] = (),
    ) -> Optional[QueryRewriteResult]:
        """
        Ask the provider for new search terms.

        Returns None when no provider is configured or the call fails.
        Terms already attempted are removed; at most 8 are returned.
        """
        if self._provider is None:
            return None

        try:
            generation = await self._provider.rewrite_query(question, list(tried_keywords))
        except Exception as e:
            logger.warning("Query rewrite failed: %s", e)
            return None

        tried = {k.lower() for k in tried_keywords}
        terms = [t for t in parse_search_terms(generation.answer) if t not in tried]
        logger.info("Query rewrite via %s produced terms: %s", generation.model or "unknown model", terms)
        return QueryRewriteResult(terms=terms[:MAX_REWRITE_TERMS], model=generation.model)
