"""
Retriever - Memory Search and Answer Synthesis

Key Components:
- Searcher: Tiered search (direct, OR keywords, single keyword, LLM rewrite)
- QueryRewriter: LLM-suggested alternative search terms
- Synthesizer: LLM answer synthesis from search hits

Pipeline:
1. Search the memory store, falling back tier by tier
2. Format the hits into a numbered context block
3. Synthesize an answer with the configured LLM provider
"""

from .context import build_messages, format_context, format_context_only
from .rewriter import QueryRewriter
from .searcher import Searcher, SearchOptions
from .synthesizer import Synthesizer, format_answer_for_display

__all__ = [
    "Searcher",
    "SearchOptions",
    "QueryRewriter",
    "Synthesizer",
    "build_messages",
    "format_context",
    "format_context_only",
    "format_answer_for_display",
]
