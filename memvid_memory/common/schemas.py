"""
Memory data model.

Write side: MemoryEntry -> StoredEntry (engine assigns frame_id).
Read side: SearchHit / SearchResult / AskResult, built fresh per call.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_LABEL = "general"
MAX_REWRITE_TERMS = 8


@dataclass(frozen=True)
class MemoryEntry:
    """An entry submitted for storage"""
    title: str
    content: str
    label: str = DEFAULT_LABEL
    tags: frozenset = field(default_factory=frozenset)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("MemoryEntry.title must be non-empty")
        if not self.label:
            object.__setattr__(self, "label", DEFAULT_LABEL)
        object.__setattr__(self, "tags", frozenset(self.tags or ()))


@dataclass(frozen=True)
class StoredEntry:
    """A MemoryEntry accepted by the engine"""
    entry: MemoryEntry
    frame_id: str
    created_at: str  # ISO-8601

    @property
    def title(self) -> str:
        return self.entry.title

    @property
    def label(self) -> str:
        return self.entry.label


@dataclass
class SearchHit:
    """A single ranked hit; frame_id is a back-reference into the store"""
    frame_id: str
    title: str
    score: float
    snippet: str
    label: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.score = clamp_score(self.score)


class SearchTier(str, Enum):
    """Which fallback tier produced a SearchResult"""
    DIRECT = "direct"
    OR_KEYWORDS = "or_keywords"
    SINGLE_KEYWORD = "single_keyword"
    REWRITE = "rewrite"
    NONE = "none"


@dataclass
class SearchResult:
    hits: List[SearchHit]
    total_hits: int
    search_time_ms: int
    tier: SearchTier = SearchTier.NONE
    query: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.hits


@dataclass
class AskResult:
    """Synthesized answer for one ask call"""
    answer: str
    context: Optional[List[SearchHit]] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    tokens_used: Optional[int] = None


@dataclass
class QueryRewriteResult:
    terms: List[str]
    model: str = ""

    def __post_init__(self):
        self.terms = self.terms[:MAX_REWRITE_TERMS]


@dataclass
class GenerationResult:
    """Normalized response from any LLM backend"""
    answer: str
    model: str
    provider: str
    tokens_used: Optional[int] = None


@dataclass
class TimelineEntry:
    frame_id: str
    title: str
    label: str
    created_at: str
    preview: str


@dataclass
class MemoryStats:
    frame_count: int = 0
    size_bytes: int = 0
    size_formatted: str = "0 B"
    labels: Dict[str, int] = field(default_factory=dict)


def clamp_score(value: Any) -> float:
    """Coerce an engine score to a finite, non-negative float."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(score) or score < 0:
        return 0.0
    return score


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.2f} KB"
    return f"{size_bytes / (1024 * 1024):.2f} MB"
