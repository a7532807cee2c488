"""
Memory store adapters.

- MemoryStore: async engine interface
- MemvidStore: memvid SDK implementation (.mv2 single-file store)
- MemoryManager: write, timeline, stats and ask operations over an open store
"""

from .memory_manager import MemoryManager
from .memory_store import MemoryStore, MemvidStore, build_embedder_config

__all__ = ["MemoryManager", "MemoryStore", "MemvidStore", "build_embedder_config"]
