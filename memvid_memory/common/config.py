"""
Configuration Management for memvid agent memory

Loads configuration from ~/.memvid/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Tuple

logger = logging.getLogger("memvid.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".memvid"
CONFIG_PATH = CONFIG_DIR / "config.json"

MEMORY_DIR_NAME = ".memvid"
MEMORY_FILE_NAME = "agent-memory.mv2"

LLM_PROVIDERS = ("none", "openai", "azureOpenai", "ollama", "anthropic", "google", "copilot")
EMBEDDING_PROVIDERS = ("none", "openai", "azureOpenai", "ollama")
SEARCH_MODES = ("auto", "lex", "sem")


@dataclass
class MemoryConfig:
    """Memory file and search defaults"""
    path: str = ""  # explicit path; empty = resolve project/global default
    project_dir: str = ""
    auto_create: bool = True
    default_search_limit: int = 10
    snippet_chars: int = 240
    search_mode: str = "auto"  # "lex", "sem" or "auto"


@dataclass
class EmbeddingConfig:
    """Embedding provider for semantic search (none = BM25 only)"""
    provider: str = "none"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "text-embedding-3-small"
    azure_endpoint: str = ""
    azure_api_key: str = ""
    azure_deployment: str = ""
    azure_api_version: str = "2024-02-01"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "nomic-embed-text"


@dataclass
class LLMConfig:
    """Language-model provider used for answer synthesis and query rewriting"""
    provider: str = "none"
    max_tokens: int = 1024
    temperature: float = 0.7
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    azure_endpoint: str = ""
    azure_api_key: str = ""
    azure_deployment: str = ""
    azure_api_version: str = "2024-02-01"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    bridge_port: int = 0
    copilot_model_family: str = "gpt-4o"
    timeout: float = 60.0


@dataclass
class BridgeConfig:
    """Loopback bridge to host-only language models"""
    host: str = "127.0.0.1"
    port: int = 0


@dataclass
class MemvidConfig:
    """Main configuration"""
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)


def _parse_section(cls, section: dict):
    """Build a flat dataclass from a dict, ignoring unknown keys"""
    known = {f for f in cls.__dataclass_fields__}
    return cls(**{k: v for k, v in section.items() if k in known})


def _parse_memory_config(data: dict) -> MemoryConfig:
    return _parse_section(MemoryConfig, data.get("memory", {}))


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    return _parse_section(EmbeddingConfig, data.get("embedding", {}))


def _parse_llm_config(data: dict) -> LLMConfig:
    return _parse_section(LLMConfig, data.get("llm", {}))


def _parse_bridge_config(data: dict) -> BridgeConfig:
    return _parse_section(BridgeConfig, data.get("bridge", {}))


# env var -> (section, attribute, type); later entries win for shared targets
_ENV_MAP = [
    ("MEMVID_MEMORY_PATH", "memory", "path", str),
    ("MEMVID_PROJECT_DIR", "memory", "project_dir", str),
    ("MEMVID_SEARCH_LIMIT", "memory", "default_search_limit", int),
    ("MEMVID_SEARCH_MODE", "memory", "search_mode", str),
    ("MEMVID_EMBEDDING_PROVIDER", "embedding", "provider", str),
    ("OPENAI_API_KEY", "embedding", "openai_api_key", str),
    ("OPENAI_BASE_URL", "embedding", "openai_base_url", str),
    ("OPENAI_EMBEDDING_MODEL", "embedding", "openai_model", str),
    ("AZURE_OPENAI_ENDPOINT", "embedding", "azure_endpoint", str),
    ("AZURE_OPENAI_API_KEY", "embedding", "azure_api_key", str),
    ("AZURE_OPENAI_DEPLOYMENT", "embedding", "azure_deployment", str),
    ("AZURE_OPENAI_API_VERSION", "embedding", "azure_api_version", str),
    ("OLLAMA_BASE_URL", "embedding", "ollama_base_url", str),
    ("OLLAMA_EMBEDDING_MODEL", "embedding", "ollama_model", str),
    ("MEMVID_LLM_PROVIDER", "llm", "provider", str),
    ("MEMVID_LLM_MAX_TOKENS", "llm", "max_tokens", int),
    ("MEMVID_LLM_TEMPERATURE", "llm", "temperature", float),
    ("OPENAI_API_KEY", "llm", "openai_api_key", str),
    ("MEMVID_LLM_OPENAI_API_KEY", "llm", "openai_api_key", str),
    ("MEMVID_LLM_OPENAI_BASE_URL", "llm", "openai_base_url", str),
    ("MEMVID_LLM_OPENAI_MODEL", "llm", "openai_model", str),
    ("AZURE_OPENAI_ENDPOINT", "llm", "azure_endpoint", str),
    ("MEMVID_LLM_AZURE_ENDPOINT", "llm", "azure_endpoint", str),
    ("AZURE_OPENAI_API_KEY", "llm", "azure_api_key", str),
    ("MEMVID_LLM_AZURE_API_KEY", "llm", "azure_api_key", str),
    ("MEMVID_LLM_AZURE_DEPLOYMENT", "llm", "azure_deployment", str),
    ("MEMVID_LLM_AZURE_API_VERSION", "llm", "azure_api_version", str),
    ("OLLAMA_BASE_URL", "llm", "ollama_base_url", str),
    ("MEMVID_LLM_OLLAMA_BASE_URL", "llm", "ollama_base_url", str),
    ("MEMVID_LLM_OLLAMA_MODEL", "llm", "ollama_model", str),
    ("ANTHROPIC_API_KEY", "llm", "anthropic_api_key", str),
    ("ANTHROPIC_MODEL", "llm", "anthropic_model", str),
    ("GOOGLE_API_KEY", "llm", "google_api_key", str),
    ("GEMINI_API_KEY", "llm", "google_api_key", str),
    ("GOOGLE_MODEL", "llm", "google_model", str),
    ("MEMVID_BRIDGE_PORT", "llm", "bridge_port", int),
    ("MEMVID_LLM_COPILOT_MODEL", "llm", "copilot_model_family", str),
    ("MEMVID_BRIDGE_HOST", "bridge", "host", str),
    ("MEMVID_BRIDGE_PORT", "bridge", "port", int),
]


def _apply_env_overrides(config: MemvidConfig) -> None:
    """Apply environment variables; later entries override earlier ones."""
    for env_var, section, attr, cast in _ENV_MAP:
        val = os.getenv(env_var)
        if not val:
            continue
        try:
            setattr(getattr(config, section), attr, cast(val))
        except ValueError:
            logger.warning("Ignoring invalid value for %s: %r", env_var, val)


def _check_memory_config(memory: MemoryConfig) -> None:
    """Reset out-of-range search settings to their defaults."""
    defaults = MemoryConfig()
    if not isinstance(memory.default_search_limit, int) or memory.default_search_limit < 1:
        logger.warning("Ignoring search limit %r; must be >= 1", memory.default_search_limit)
        memory.default_search_limit = defaults.default_search_limit
    if not isinstance(memory.snippet_chars, int) or memory.snippet_chars < 1:
        logger.warning("Ignoring snippet size %r; must be >= 1", memory.snippet_chars)
        memory.snippet_chars = defaults.snippet_chars
    if memory.search_mode not in SEARCH_MODES:
        logger.warning("Ignoring unknown search mode %r", memory.search_mode)
        memory.search_mode = defaults.search_mode


def load_config(config_path: Optional[Path] = None) -> MemvidConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.memvid/config.json)
    3. Default values
    """
    config = MemvidConfig()
    path = config_path or CONFIG_PATH

    # Load from config file if exists
    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)

            config.memory = _parse_memory_config(data)
            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.bridge = _parse_bridge_config(data)
        except (json.JSONDecodeError, IOError, TypeError) as e:
            logger.warning("Failed to load config file %s: %s", path, e)

    _apply_env_overrides(config)
    _check_memory_config(config.memory)
    return config


def validate_llm_config(llm: LLMConfig) -> Tuple[bool, Optional[str]]:
    """Check that the selected LLM provider has what it needs.

    Returns:
        (valid, message) - message explains problems or degraded modes
    """
    provider = llm.provider

    if provider == "none":
        return True, "No LLM provider configured. memvid_ask will return context only without AI synthesis."
    if provider == "copilot":
        if llm.bridge_port <= 0:
            return False, "Copilot provider requires the host bridge port (MEMVID_BRIDGE_PORT)."
        return True, "Using host models through the loopback bridge."
    if provider == "openai":
        if not llm.openai_api_key:
            return False, "OpenAI API key is not configured for LLM. Set OPENAI_API_KEY or llm.openai_api_key."
        return True, None
    if provider == "azureOpenai":
        if not llm.azure_endpoint:
            return False, "Azure OpenAI endpoint is not configured for LLM."
        if not llm.azure_api_key:
            return False, "Azure OpenAI API key is not configured for LLM."
        if not llm.azure_deployment:
            return False, "Azure OpenAI LLM deployment name is not configured."
        return True, None
    if provider == "ollama":
        # No API key needed
        return True, None
    if provider == "anthropic":
        if not llm.anthropic_api_key:
            return False, "Anthropic API key is not configured. Set ANTHROPIC_API_KEY."
        return True, None
    if provider == "google":
        if not llm.google_api_key:
            return False, "Google API key is not configured. Set GOOGLE_API_KEY or GEMINI_API_KEY."
        return True, None

    return False, f"Unknown LLM provider: {provider}"


def validate_embedding_config(embedding: EmbeddingConfig) -> Tuple[bool, Optional[str]]:
    """Check the embedding provider configuration."""
    provider = embedding.provider

    if provider == "none":
        return True, "No embedding provider configured. Using BM25 keyword search only."
    if provider == "openai":
        if not embedding.openai_api_key:
            return False, "OpenAI API key is not configured. Set OPENAI_API_KEY."
        return True, None
    if provider == "azureOpenai":
        if not (embedding.azure_endpoint and embedding.azure_api_key and embedding.azure_deployment):
            return False, "Azure OpenAI embedding configuration is incomplete."
        return True, None
    if provider == "ollama":
        return True, None

    return False, f"Unknown embedding provider: {provider}"


def resolve_memory_path(
    explicit_path: Optional[str] = None,
    project_dir: Optional[str] = None,
    global_dir: Optional[Path] = None,
) -> Path:
    """
    Resolve the memory file location.

    Order:
    1. Explicit path
    2. <project_dir>/.memvid/agent-memory.mv2
    3. <global_dir>/agent-memory.mv2 (defaults to ~/.memvid)
    """
    if explicit_path and explicit_path.strip():
        return Path(explicit_path).expanduser()
    if project_dir and project_dir.strip():
        return Path(project_dir).expanduser() / MEMORY_DIR_NAME / MEMORY_FILE_NAME
    return Path(global_dir or CONFIG_DIR) / MEMORY_FILE_NAME


def memory_exists(path: Path) -> bool:
    """True if a memory file is already present at the resolved location"""
    return Path(path).is_file()
