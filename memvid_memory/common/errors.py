"""
Error types for memvid agent memory.

Every error carries a stable ``code`` so tool handlers can render a short,
user-facing message without leaking internals.
"""

from typing import Optional


class MemvidError(Exception):
    """Base error for memory operations."""

    def __init__(self, message: str, code: str = "MV_UNKNOWN"):
        super().__init__(message)
        self.message = message
        self.code = code


class MemoryNotInitializedError(MemvidError):
    """Raised when an operation runs before the memory file is opened."""

    def __init__(self, message: str = "Memory not initialized. Open a memory file first."):
        super().__init__(message, "MV_NOT_INITIALIZED")


class MemoryFileError(MemvidError):
    """Memory file missing, locked or not creatable."""

    def __init__(self, message: str):
        super().__init__(message, "MV_FILE_ERROR")


class StoreError(MemvidError):
    def __init__(self, message: str):
        super().__init__(message, "MV_STORE_ERROR")


class SearchError(MemvidError):
    def __init__(self, message: str):
        super().__init__(message, "MV_SEARCH_ERROR")


class EmbeddingError(MemvidError):
    def __init__(self, message: str):
        super().__init__(message, "MV_EMBEDDING_ERROR")


class AskError(MemvidError):
    def __init__(self, message: str):
        super().__init__(message, "MV_ASK_ERROR")


class ProviderError(MemvidError):
    """Language-model backend failure (auth, quota, malformed response)."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        prefix = f"{provider} error"
        if status is not None:
            prefix = f"{prefix} ({status})"
        super().__init__(f"{prefix}: {message}", "MV_PROVIDER_ERROR")
        self.provider = provider
        self.status = status


# Engine error markers -> typed errors
_ENGINE_ERROR_MAP = [
    (("MV001", "capacity exceeded"), lambda msg: StoreError("Storage capacity exceeded")),
    (("MV007", "locked"), lambda msg: MemoryFileError("Memory file is locked by another process")),
    (("MV013", "file not found"), lambda msg: MemoryFileError("Memory file not found")),
    (("MV010", "not found"), lambda msg: SearchError("Frame not found")),
    (("MV015", "embedding"), lambda msg: EmbeddingError(f"Embedding generation failed: {msg}")),
]


def map_memvid_error(error: BaseException) -> MemvidError:
    """Map a raw storage-engine exception to a typed MemvidError."""
    if isinstance(error, MemvidError):
        return error

    message = str(error)
    for markers, factory in _ENGINE_ERROR_MAP:
        if any(marker in message for marker in markers):
            return factory(message)

    return MemvidError(message or type(error).__name__, "MV_UNKNOWN")
