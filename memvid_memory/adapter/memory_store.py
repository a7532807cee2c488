# Summary of file: memvid store adapter (single-file .mv2 memory engine)

from abc import ABC, abstractmethod
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..common.config import EmbeddingConfig
from ..common.errors import MemoryFileError, map_memvid_error

logger = logging.getLogger("memvid.adapter.store")


class MemoryStore(ABC):
    """
    Engine interface used by the manager and the search pipeline.

    Documents are dicts with ``title``, ``label``, ``text``, ``tags`` and
    ``metadata``; results are the engine's raw dicts.
    """

    @abstractmethod
    async def put(self, doc: Dict[str, Any]) -> str:
        """Store one document and return its frame id."""

    async def put_many(self, docs: List[Dict[str, Any]]) -> List[str]:
        return [await self.put(doc) for doc in docs]

    @abstractmethod
    async def find(self, query: str, *, k: int = 10, mode: str = "auto", snippet_chars: int = 240) -> Dict[str, Any]:
        """Run one engine query; returns ``{"hits": [...]}``."""

    @abstractmethod
    async def ask(self, question: str, *, k: int = 5, model: Optional[str] = None, context_only: bool = False) -> Dict[str, Any]:
        """Engine-native retrieval-augmented answer."""

    async def timeline(self, limit: int = 20, reverse: bool = True) -> Optional[List[Dict[str, Any]]]:
        """Recent frames, or None when the engine has no timeline."""
        return None

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Engine statistics (``frame_count``, ``size_bytes``)."""

    async def seal(self) -> None:
        """Flush and release the underlying file."""


def build_embedder_config(config: Optional[EmbeddingConfig]) -> Optional[Dict[str, Any]]:
    """
    Translate the embedding section into the engine's embedder options.

    Returns None (BM25-only search) when no provider is configured or its
    settings are incomplete.
    """
    if config is None or config.provider == "none":
        return None

    if config.provider == "openai":
        if not config.openai_api_key:
            logger.warning("OpenAI API key not configured for embeddings")
            return None
        return {
            "type": "openai",
            "api_key": config.openai_api_key,
            "base_url": config.openai_base_url or "https://api.openai.com/v1",
            "model": config.openai_model or "text-embedding-3-small",
        }

    if config.provider == "azureOpenai":
        if not (config.azure_endpoint and config.azure_api_key and config.azure_deployment):
            logger.warning("Azure OpenAI embedding configuration incomplete")
            return None
        return {
            "type": "azure-openai",
            "endpoint": config.azure_endpoint,
            "api_key": config.azure_api_key,
            "deployment_name": config.azure_deployment,
            "api_version": config.azure_api_version or "2024-02-01",
        }

    if config.provider == "ollama":
        return {
            "type": "ollama",
            "base_url": config.ollama_base_url or "http://localhost:11434",
            "model": config.ollama_model or "nomic-embed-text",
        }

    logger.warning("Unknown embedding provider: %s", config.provider)
    return None


class MemvidStore(MemoryStore):
    """
    MemoryStore over the memvid SDK.

    The SDK is synchronous; every call runs in a worker thread so the
    event loop stays responsive.
    """

    def __init__(self, handle: Any, path: Path):
        self._mv = handle
        self.path = Path(path)

    @classmethod
    async def open(
        cls,
        path: Path,
        auto_create: bool = True,
        embedding: Optional[EmbeddingConfig] = None,
    ) -> "MemvidStore":
        """
        Open an existing .mv2 file or create a new one.

        Raises:
            MemoryFileError: missing file/directory without auto_create
            MemvidError: mapped engine failure
        """
        path = Path(path).expanduser()
        if not path.parent.exists():
            if not auto_create:
                raise MemoryFileError(f"Directory does not exist: {path.parent}")
            path.parent.mkdir(parents=True, exist_ok=True)

        file_exists = path.exists()
        if not file_exists and not auto_create:
            raise MemoryFileError(f"Memory file does not exist: {path}")

        import memvid_sdk  # pip install memvid-sdk

        embedder = build_embedder_config(embedding)
        kwargs: Dict[str, Any] = {}
        if embedder:
            kwargs["embedder"] = embedder
            logger.info("Using embedding provider: %s", embedding.provider)
        else:
            logger.info("No embedding provider configured, using BM25 search only")

        try:
            if file_exists:
                handle = await asyncio.to_thread(memvid_sdk.use, "basic", str(path), **kwargs)
            else:
                handle = await asyncio.to_thread(memvid_sdk.create, str(path), **kwargs)
        except Exception as e:
            raise map_memvid_error(e) from e

        logger.info("Opened memory file: %s", path)
        return cls(handle, path)

    async def put(self, doc: Dict[str, Any]) -> str:
        frame_id = await asyncio.to_thread(self._mv.put, **doc)
        return str(frame_id)

    async def put_many(self, docs: List[Dict[str, Any]]) -> List[str]:
        put_many = getattr(self._mv, "put_many", None)
        if put_many is None:
            return await super().put_many(docs)
        frame_ids = await asyncio.to_thread(put_many, docs)
        return [str(f) for f in frame_ids]

    async def find(self, query: str, *, k: int = 10, mode: str = "auto", snippet_chars: int = 240) -> Dict[str, Any]:
        result = await asyncio.to_thread(self._mv.find, query, k=k, mode=mode, snippet_chars=snippet_chars)
        return _as_dict(result)

    async def ask(self, question: str, *, k: int = 5, model: Optional[str] = None, context_only: bool = False) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"k": k, "context_only": context_only}
        if model:
            kwargs["model"] = model
        result = await asyncio.to_thread(self._mv.ask, question, **kwargs)
        return _as_dict(result)

    async def timeline(self, limit: int = 20, reverse: bool = True) -> Optional[List[Dict[str, Any]]]:
        timeline = getattr(self._mv, "timeline", None)
        if timeline is None:
            return None
        entries = await asyncio.to_thread(timeline, limit=limit, reverse=reverse)
        return [_as_dict(e) for e in entries or []]

    async def stats(self) -> Dict[str, Any]:
        return _as_dict(await asyncio.to_thread(self._mv.stats))

    async def seal(self) -> None:
        seal = getattr(self._mv, "seal", None)
        if seal is not None:
            await asyncio.to_thread(seal)


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return dict(getattr(value, "__dict__", {}) or {})
