"""Tests for configuration loading, validation and memory path resolution."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from memvid_memory.common.config import (
    EmbeddingConfig,
    LLMConfig,
    load_config,
    memory_exists,
    resolve_memory_path,
    validate_embedding_config,
    validate_llm_config,
)

ENV_VARS = [
    "MEMVID_MEMORY_PATH", "MEMVID_PROJECT_DIR", "MEMVID_SEARCH_LIMIT", "MEMVID_SEARCH_MODE",
    "MEMVID_EMBEDDING_PROVIDER", "MEMVID_LLM_PROVIDER", "MEMVID_LLM_MAX_TOKENS",
    "MEMVID_LLM_TEMPERATURE", "OPENAI_API_KEY", "MEMVID_LLM_OPENAI_API_KEY",
    "ANTHROPIC_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY", "MEMVID_BRIDGE_PORT",
    "AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_KEY", "OLLAMA_BASE_URL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path):
        with patch("memvid_memory.common.config.CONFIG_PATH", tmp_path / "missing.json"):
            cfg = load_config()
        assert cfg.llm.provider == "none"
        assert cfg.llm.max_tokens == 1024
        assert cfg.llm.temperature == 0.7
        assert cfg.memory.default_search_limit == 10
        assert cfg.memory.snippet_chars == 240
        assert cfg.memory.search_mode == "auto"
        assert cfg.embedding.provider == "none"
        assert cfg.bridge.host == "127.0.0.1"

    def test_file_sections(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "memory": {"path": "/data/mem.mv2", "default_search_limit": 5},
            "llm": {"provider": "ollama", "ollama_model": "qwen2", "unknown_key": 1},
            "embedding": {"provider": "ollama"},
        }))
        with patch("memvid_memory.common.config.CONFIG_PATH", config_file):
            cfg = load_config()
        assert cfg.memory.path == "/data/mem.mv2"
        assert cfg.memory.default_search_limit == 5
        assert cfg.llm.provider == "ollama"
        assert cfg.llm.ollama_model == "qwen2"
        assert cfg.embedding.provider == "ollama"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"llm": {"provider": "ollama"}}))
        monkeypatch.setenv("MEMVID_LLM_PROVIDER", "openai")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-shared")
        monkeypatch.setenv("MEMVID_LLM_TEMPERATURE", "0.2")

        cfg = load_config(config_file)

        assert cfg.llm.provider == "openai"
        assert cfg.llm.openai_api_key == "sk-shared"
        assert cfg.embedding.openai_api_key == "sk-shared"
        assert cfg.llm.temperature == 0.2

    def test_specific_env_wins_over_shared(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-shared")
        monkeypatch.setenv("MEMVID_LLM_OPENAI_API_KEY", "sk-llm")
        cfg = load_config(tmp_path / "none.json")
        assert cfg.llm.openai_api_key == "sk-llm"
        assert cfg.embedding.openai_api_key == "sk-shared"

    def test_bridge_port_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MEMVID_BRIDGE_PORT", "4567")
        cfg = load_config(tmp_path / "none.json")
        assert cfg.llm.bridge_port == 4567
        assert cfg.bridge.port == 4567

    def test_invalid_env_value_is_ignored(self, tmp_path, monkeypatch, caplog):
        import logging
        monkeypatch.setenv("MEMVID_LLM_MAX_TOKENS", "lots")
        with caplog.at_level(logging.WARNING, logger="memvid.common.config"):
            cfg = load_config(tmp_path / "none.json")
        assert cfg.llm.max_tokens == 1024
        assert "MEMVID_LLM_MAX_TOKENS" in caplog.text

    def test_search_limit_below_one_falls_back_to_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MEMVID_SEARCH_LIMIT", "0")
        cfg = load_config(tmp_path / "none.json")
        assert cfg.memory.default_search_limit == 10

    def test_out_of_range_file_settings_fall_back_to_defaults(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "memory": {"default_search_limit": -3, "snippet_chars": 0, "search_mode": "fuzzy"},
        }))

        cfg = load_config(config_file)

        assert cfg.memory.default_search_limit == 10
        assert cfg.memory.snippet_chars == 240
        assert cfg.memory.search_mode == "auto"

    def test_malformed_file_is_ignored(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")
        cfg = load_config(config_file)
        assert cfg.llm.provider == "none"


class TestValidateLLMConfig:
    def test_none_is_valid(self):
        valid, message = validate_llm_config(LLMConfig())
        assert valid
        assert "context only" in message

    @pytest.mark.parametrize("provider", ["openai", "anthropic", "google"])
    def test_key_required(self, provider):
        valid, message = validate_llm_config(LLMConfig(provider=provider))
        assert not valid
        assert "API key" in message

    def test_azure_requires_all_fields(self):
        valid, _ = validate_llm_config(LLMConfig(provider="azureOpenai", azure_endpoint="https://x", azure_api_key="k"))
        assert not valid
        valid, _ = validate_llm_config(LLMConfig(
            provider="azureOpenai", azure_endpoint="https://x", azure_api_key="k", azure_deployment="d",
        ))
        assert valid

    def test_ollama_needs_nothing(self):
        assert validate_llm_config(LLMConfig(provider="ollama")) == (True, None)

    def test_unknown(self):
        valid, message = validate_llm_config(LLMConfig(provider="bogus"))
        assert not valid
        assert "bogus" in message


class TestValidateEmbeddingConfig:
    def test_none_means_bm25(self):
        valid, message = validate_embedding_config(EmbeddingConfig())
        assert valid
        assert "BM25" in message

    def test_openai_requires_key(self):
        assert not validate_embedding_config(EmbeddingConfig(provider="openai"))[0]


class TestResolveMemoryPath:
    def test_explicit_path_wins(self, tmp_path):
        explicit = tmp_path / "custom.mv2"
        assert resolve_memory_path(str(explicit), str(tmp_path / "proj"), tmp_path / "global") == explicit

    def test_project_path(self, tmp_path):
        path = resolve_memory_path(None, str(tmp_path), tmp_path / "global")
        assert path == tmp_path / ".memvid" / "agent-memory.mv2"

    def test_global_fallback(self, tmp_path):
        assert resolve_memory_path("", "  ", tmp_path) == tmp_path / "agent-memory.mv2"

    def test_memory_exists(self, tmp_path):
        path = tmp_path / "agent-memory.mv2"
        assert not memory_exists(path)
        path.write_bytes(b"mv2")
        assert memory_exists(path)
        assert not memory_exists(tmp_path)
