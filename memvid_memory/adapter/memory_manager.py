"""
Memory Manager

Owns the open memory store and provides the write, timeline, stats and
engine-native ask operations used by the tool server. Search goes through
the retriever's Searcher over ``manager.engine``.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..common.config import EmbeddingConfig
from ..common.errors import AskError, MemoryNotInitializedError, MemvidError, StoreError
from ..common.schemas import (
    DEFAULT_LABEL,
    MemoryEntry,
    MemoryStats,
    SearchHit,
    StoredEntry,
    TimelineEntry,
    format_size,
)
from .memory_store import MemoryStore, MemvidStore

logger = logging.getLogger("memvid.adapter.manager")

PREVIEW_CHARS = 200
TITLE_CHARS = 100
UNTITLED = "Memory Entry"


def utc_now_iso() -> str:
    return iso_timestamp(datetime.now(timezone.utc))


def iso_timestamp(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MemoryManager:
    """
    Wrapper around one open MemoryStore.

    Every operation raises MemoryNotInitializedError when no store is open.
    """

    def __init__(self, store: Optional[MemoryStore] = None, path: Optional[Path] = None):
        self._store = store
        self.path = Path(path) if path else None

    @classmethod
    async def open(
        cls,
        path: Path,
        auto_create: bool = True,
        embedding: Optional[EmbeddingConfig] = None,
    ) -> "MemoryManager":
        store = await MemvidStore.open(path, auto_create=auto_create, embedding=embedding)
        return cls(store, store.path)

    @property
    def initialized(self) -> bool:
        return self._store is not None

    @property
    def engine(self) -> MemoryStore:
        self._ensure_initialized()
        return self._store

    def _ensure_initialized(self) -> None:
        if self._store is None:
            raise MemoryNotInitializedError()

    @staticmethod
    def _to_doc(entry: MemoryEntry, created_at: str) -> Dict[str, Any]:
        return {
            "title": entry.title,
            "label": entry.label or DEFAULT_LABEL,
            "text": entry.content,
            "tags": sorted(entry.tags),
            "metadata": {**entry.metadata, "createdAt": created_at},
        }

    async def store(self, entry: MemoryEntry) -> StoredEntry:
        """
        Store a new entry.

        Raises:
            MemoryNotInitializedError: no store is open
            StoreError: the engine rejected the write
        """
        self._ensure_initialized()
        created_at = utc_now_iso()
        try:
            frame_id = await self._store.put(self._to_doc(entry, created_at))
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to store entry: {e}") from e

        logger.info("Stored entry: %s (%s)", entry.title, frame_id)
        return StoredEntry(entry=entry, frame_id=frame_id, created_at=created_at)

    async def store_many(self, entries: List[MemoryEntry]) -> List[StoredEntry]:
        self._ensure_initialized()
        created_at = utc_now_iso()
        try:
            frame_ids = await self._store.put_many([self._to_doc(e, created_at) for e in entries])
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to store entries in batch: {e}") from e

        logger.info("Stored %d entries in batch", len(frame_ids))
        return [
            StoredEntry(entry=entry, frame_id=frame_id, created_at=created_at)
            for entry, frame_id in zip(entries, frame_ids)
        ]

    async def ask(
        self,
        question: str,
        context_limit: int = 5,
        model: Optional[str] = None,
        context_only: bool = False,
    ) -> Dict[str, Any]:
        """
        Engine-native retrieval-augmented answer.

        Returns:
            {"text": str, "context": [SearchHit, ...], "model": model}
        """
        self._ensure_initialized()
        try:
            result = await self._store.ask(question, k=context_limit, model=model, context_only=context_only)
        except Exception as e:
            raise AskError(f"RAG query failed: {e}") from e

        logger.info("RAG query: %r", question[:50])
        context = [
            SearchHit(
                frame_id=str(c.get("frame_id") or c.get("frameId") or ""),
                title=c.get("title") or "",
                score=c.get("score", 0.0),
                snippet=c.get("snippet") or "",
            )
            for c in result.get("context") or []
        ]
        return {"text": result.get("text") or result.get("answer") or "", "context": context, "model": model}

    async def timeline(self, limit: int = 20) -> List[TimelineEntry]:
        """
        Most recent entries, newest first.

        Engine failures are logged and yield an empty list.
        """
        self._ensure_initialized()
        try:
            entries = await self._store.timeline(limit=limit, reverse=True)
            logger.info("Timeline returned %d entries", len(entries or []))
            if entries:
                return [_timeline_from_frame(e) for e in entries[:limit]]

            logger.info("Timeline not available, using find fallback")
            result = await self._store.find("*", k=limit, mode="lex")
            return [_timeline_from_hit(h) for h in (result.get("hits") or [])[:limit]]
        except MemvidError as e:
            logger.warning("Timeline failed: %s", e.message)
        except Exception as e:
            logger.warning("Timeline failed: %s", e)
        return []

    async def stats(self) -> MemoryStats:
        """Store statistics; engine failures are logged and yield zero stats."""
        self._ensure_initialized()
        try:
            raw = await self._store.stats()
        except Exception as e:
            logger.warning("Stats not available: %s", e)
            return MemoryStats()

        frame_count = int(raw.get("frame_count") or 0)
        size_bytes = int(raw.get("size_bytes") or 0)
        stats = MemoryStats(
            frame_count=frame_count,
            size_bytes=size_bytes,
            size_formatted=format_size(size_bytes),
            labels=dict(raw.get("labels") or {}),
        )
        logger.info("Stats: %d entries, %s", stats.frame_count, stats.size_formatted)
        return stats

    async def close(self) -> None:
        """Seal and release the store. Safe to call more than once."""
        if self._store is None:
            return
        try:
            await self._store.seal()
            logger.info("Memory closed")
        except Exception as e:
            logger.warning("Error closing memory: %s", e)
        finally:
            self._store = None


def _first_line_title(text: str) -> str:
    return text.split("\n", 1)[0][:TITLE_CHARS] or UNTITLED


def _timeline_from_frame(frame: Dict[str, Any]) -> TimelineEntry:
    metadata = frame.get("metadata") if isinstance(frame.get("metadata"), dict) else {}
    preview = str(frame.get("preview") or frame.get("text") or frame.get("content") or frame.get("snippet") or "")

    timestamp = frame.get("timestamp")
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool) and timestamp > 0:
        created_at = iso_timestamp(datetime.fromtimestamp(timestamp, tz=timezone.utc))
    else:
        created_at = str(frame.get("createdAt") or metadata.get("createdAt") or "")

    return TimelineEntry(
        frame_id=str(frame.get("frame_id") or frame.get("frameId") or frame.get("id") or ""),
        title=str(metadata["title"]) if metadata.get("title") else _first_line_title(preview),
        label=str(metadata.get("label") or frame.get("label") or DEFAULT_LABEL),
        created_at=created_at,
        preview=preview[:PREVIEW_CHARS],
    )


def _timeline_from_hit(hit: Dict[str, Any]) -> TimelineEntry:
    metadata = hit.get("metadata") if isinstance(hit.get("metadata"), dict) else {}
    content = str(hit.get("snippet") or hit.get("text") or hit.get("content") or "")
    return TimelineEntry(
        frame_id=str(hit.get("frameId") or hit.get("frame_id") or hit.get("id") or ""),
        title=str(hit["title"]) if hit.get("title") else _first_line_title(content),
        label=str(hit.get("label") or DEFAULT_LABEL),
        created_at=str(metadata.get("createdAt") or hit.get("createdAt") or ""),
        preview=content[:PREVIEW_CHARS],
    )
