"""
Searcher

Tiered search over the memory store. Each tier runs only when every
earlier tier returned nothing:

0. the raw query
1. extracted keywords joined with OR
2. each keyword alone, in extraction order
3. LLM-suggested alternative terms, each alone (needs a provider)

The first tier with at least one hit is final. The label filter is applied
to that tier's hits afterwards and never triggers another tier.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from ..adapter.memory_store import MemoryStore
from ..common.config import SEARCH_MODES
from ..common.errors import MemoryNotInitializedError, SearchError
from ..common.keywords import extract_keywords
from ..common.schemas import SearchHit, SearchResult, SearchTier
from .rewriter import QueryRewriter

logger = logging.getLogger("memvid.retriever.searcher")


@dataclass
class SearchOptions:
    limit: int = 10
    label: Optional[str] = None
    mode: str = "auto"
    snippet_chars: int = 240

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.mode not in SEARCH_MODES:
            raise ValueError(f"mode must be one of {SEARCH_MODES}, got {self.mode!r}")


class Searcher:
    """
    Searches agent memory with keyword and query-rewrite fallbacks.

    The store handle is owned by the caller; the rewriter is optional and
    only consulted once all keyword tiers are exhausted.
    """

    def __init__(self, store: MemoryStore, rewriter: Optional[QueryRewriter] = None):
        self._store = store
        self._rewriter = rewriter

    async def search(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
        allow_rewrite: bool = True,
    ) -> SearchResult:
        """
        Search memory for a query.

        Args:
            query: Free-text query
            options: Limit, label filter, engine mode and snippet size
            allow_rewrite: Permit the LLM rewrite tier

        Returns:
            SearchResult with hits sorted by descending score

        Raises:
            SearchError: when the engine fails at any tier
        """
        options = options or SearchOptions()
        started = time.monotonic()

        hits, tier, used_query = await self._run_tiers(query, options, allow_rewrite)

        if options.label:
            hits = [h for h in hits if h.label == options.label]

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Search %r finished at tier %s with %d hits in %dms",
            query[:50], tier.value, len(hits), elapsed_ms,
        )
        return SearchResult(
            hits=hits,
            total_hits=len(hits),
            search_time_ms=elapsed_ms,
            tier=tier,
            query=used_query,
        )

    async def _run_tiers(
        self,
        query: str,
        options: SearchOptions,
        allow_rewrite: bool,
    ) -> Tuple[List[SearchHit], SearchTier, str]:
        attempted: Set[str] = set()

        # Tier 0: direct
        hits = await self._find(query, options, attempted)
        logger.info("Direct query %r returned %d results", query[:50], len(hits))
        if hits:
            return hits, SearchTier.DIRECT, query

        keywords = extract_keywords(query)
        logger.info("Fallback: extracted keywords: %s", ", ".join(keywords))

        if keywords:
            # Tier 1: OR of keywords
            or_query = " OR ".join(keywords)
            hits = await self._find(or_query, options, attempted)
            logger.info("OR query %r returned %d results", or_query, len(hits))
            if hits:
                return hits, SearchTier.OR_KEYWORDS, or_query

            # Tier 2: single keywords
            for keyword in keywords:
                hits = await self._find(keyword, options, attempted)
                if hits:
                    logger.info("Single keyword %r returned %d results", keyword, len(hits))
                    return hits, SearchTier.SINGLE_KEYWORD, keyword
            logger.info("No single keyword matched")

        # Tier 3: LLM rewrite
        if allow_rewrite and self._rewriter is not None and self._rewriter.is_available:
            rewrite = await self._rewriter.rewrite(query, keywords)
            if rewrite and rewrite.terms:
                logger.info("Rewrite terms from %s: %s", rewrite.model or "LLM", ", ".join(rewrite.terms))
                for term in rewrite.terms:
                    if term.lower() in attempted:
                        continue
                    hits = await self._find(term, options, attempted)
                    if hits:
                        logger.info("Rewrite term %r returned %d results", term, len(hits))
                        return hits, SearchTier.REWRITE, term
            else:
                logger.info("Query rewrite produced no usable terms")

        return [], SearchTier.NONE, query

    async def _find(self, query: str, options: SearchOptions, attempted: Set[str]) -> List[SearchHit]:
        attempted.add(query.lower())
        try:
            raw = await self._store.find(
                query,
                k=options.limit,
                mode=options.mode,
                snippet_chars=options.snippet_chars,
            )
            return normalize_hits(raw, options.limit)
        except (SearchError, MemoryNotInitializedError):
            raise
        except Exception as e:
            raise SearchError(str(e) or type(e).__name__) from e


def normalize_hits(raw: Any, limit: int) -> List[SearchHit]:
    """
    Convert an engine find() result into ranked SearchHits.

    Accepts either ``{"hits": [...]}`` or a bare list. Duplicate frame ids
    keep their highest-scoring hit.
    """
    if isinstance(raw, dict):
        items = raw.get("hits") or []
    else:
        items = raw or []

    by_id: Dict[str, SearchHit] = {}
    anonymous: List[SearchHit] = []
    for item in items:
        hit = _to_hit(item)
        if not hit.frame_id:
            anonymous.append(hit)
        elif hit.frame_id not in by_id or by_id[hit.frame_id].score < hit.score:
            by_id[hit.frame_id] = hit

    hits = list(by_id.values()) + anonymous
    hits.sort(key=lambda h: h.score, reverse=True)
    return hits[:limit]


def _to_hit(item: Any) -> SearchHit:
    if not isinstance(item, dict):
        item = getattr(item, "__dict__", {}) or {}
    frame_id = item.get("frame_id") or item.get("frameId") or item.get("id") or ""
    metadata = item.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    return SearchHit(
        frame_id=str(frame_id),
        title=item.get("title") or metadata.get("title") or "",
        score=item.get("score"),
        snippet=item.get("snippet") or item.get("text") or "",
        label=item.get("label") or None,
        metadata=metadata,
    )
