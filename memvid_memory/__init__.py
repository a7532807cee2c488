"""
memvid agent memory

Persistent agent memory over a single-file memvid store, exposed to AI
coding agents as MCP tools.

Usage:
    from memvid_memory.common import load_config, create_provider
    from memvid_memory.adapter import MemoryManager
    from memvid_memory.retriever import Searcher, Synthesizer
    from memvid_memory.server.server import MCPServerApp
"""

__version__ = "0.1.0"
