# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Tests for OptimizerSettings — env/dict loading, defaults, clamping."""
import pytest

from leanprompt.config import OptimizerSettings

_ENV_VARS = (
    "LEANPROMPT_EMBEDDING_PROVIDER", "LEANPROMPT_API_KEY", "LEANPROMPT_BASE_URL",
    "LEANPROMPT_EMBEDDING_MODEL", "LEANPROMPT_MAX_EMBED_CHARS", "LEANPROMPT_EMBED_BATCH_SIZE",
    "OPENAI_API_KEY", "OLLAMA_BASE_URL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestOptimizerSettings:

    def test_defaults(self):
        cfg = OptimizerSettings()
        assert cfg.provider == "ollama"
        assert cfg.api_key == ""
        assert cfg.base_url is None
        assert cfg.max_embed_chars == 8000
        assert cfg.embed_batch_size == 10

    def test_from_dict(self):
        cfg = OptimizerSettings.from_dict({
            "provider": "openai",
            "api_key": "sk-test",
            "embedding_model": "text-embedding-3-large",
            "embed_batch_size": 64,
        })
        assert cfg.provider == "openai"
        assert cfg.api_key == "sk-test"
        assert cfg.embedding_model == "text-embedding-3-large"
        assert cfg.embed_batch_size == 64

    def test_from_dict_defaults(self):
        cfg = OptimizerSettings.from_dict({})
        assert cfg.provider == "ollama"
        assert cfg.max_embed_chars == 8000

    def test_resolved_model_ollama(self):
        assert OptimizerSettings().resolved_model == "nomic-embed-text"

    def test_resolved_model_openai(self):
        assert OptimizerSettings(provider="openai").resolved_model == "text-embedding-3-small"

    def test_resolved_model_custom(self):
        cfg = OptimizerSettings(provider="ollama", embedding_model="mxbai-embed-large")
        assert cfg.resolved_model == "mxbai-embed-large"

    def test_unknown_provider_falls_back(self):
        assert OptimizerSettings(provider="cohere").provider == "ollama"

    @pytest.mark.parametrize("value,expected", [(0, 1), (-5, 1), (500_000, 100_000), (1200, 1200)])
    def test_max_embed_chars_clamped(self, value, expected):
        assert OptimizerSettings(max_embed_chars=value).max_embed_chars == expected

    @pytest.mark.parametrize("value,expected", [(0, 1), (10_000, 2048), (32, 32)])
    def test_batch_size_clamped(self, value, expected):
        assert OptimizerSettings(embed_batch_size=value).embed_batch_size == expected

    def test_from_env_defaults(self, clean_env):
        cfg = OptimizerSettings.from_env()
        assert cfg.provider == "ollama"
        assert cfg.base_url is None
        assert cfg.api_key == ""

    def test_from_env_openai_key_fallback(self, clean_env):
        clean_env.setenv("LEANPROMPT_EMBEDDING_PROVIDER", "openai")
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        cfg = OptimizerSettings.from_env()
        assert cfg.provider == "openai"
        assert cfg.api_key == "sk-test"

    def test_from_env_explicit_key_wins(self, clean_env):
        clean_env.setenv("LEANPROMPT_EMBEDDING_PROVIDER", "openai")
        clean_env.setenv("LEANPROMPT_API_KEY", "sk-explicit")
        clean_env.setenv("OPENAI_API_KEY", "sk-other")
        assert OptimizerSettings.from_env().api_key == "sk-explicit"

    def test_from_env_ollama_ignores_openai_key(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        assert OptimizerSettings.from_env().api_key == ""

    def test_from_env_ollama_base_url(self, clean_env):
        clean_env.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434/")
        assert OptimizerSettings.from_env().base_url == "http://gpu-box:11434/v1"

    def test_from_env_explicit_base_url(self, clean_env):
        clean_env.setenv("LEANPROMPT_BASE_URL", "http://proxy/v1")
        clean_env.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434")
        assert OptimizerSettings.from_env().base_url == "http://proxy/v1"

    def test_from_env_numbers(self, clean_env):
        clean_env.setenv("LEANPROMPT_EMBEDDING_MODEL", "all-minilm")
        clean_env.setenv("LEANPROMPT_MAX_EMBED_CHARS", "4000")
        clean_env.setenv("LEANPROMPT_EMBED_BATCH_SIZE", "0")
        cfg = OptimizerSettings.from_env()
        assert cfg.resolved_model == "all-minilm"
        assert cfg.max_embed_chars == 4000
        assert cfg.embed_batch_size == 1
