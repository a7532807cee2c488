"""
memvid agent memory common module

Shared infrastructure: configuration, errors, data model, keyword
extraction, prompts and the LLM provider adapter.
"""

from .config import MemvidConfig, load_config
from .errors import MemvidError, ProviderError
from .llm_client import LLMProvider, create_provider

__all__ = [
    "MemvidConfig",
    "load_config",
    "MemvidError",
    "ProviderError",
    "LLMProvider",
    "create_provider",
]
