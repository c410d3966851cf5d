"""Unit tests for configuration dataclasses."""

from dataclasses import FrozenInstanceError

import pytest

from contextpilot.config import CacheConfig
from contextpilot.config import DispatchConfig
from contextpilot.config import MemoryConfig
from contextpilot.config import PromptConfig
from contextpilot.config import ProviderConfig


# ---------------------------------------------------------------------------
# ProviderConfig
# ---------------------------------------------------------------------------


class TestProviderConfig:
    def test_defaults(self):
        cfg = ProviderConfig(name="local")
        assert cfg.kind == "local"
        assert cfg.model == ""
        assert cfg.api_key is None
        assert cfg.base_url is None
        assert cfg.temperature == 0.1
        assert cfg.max_tokens == 2048
        assert cfg.timeout_seconds == 30.0
        assert cfg.enabled is True


# ---------------------------------------------------------------------------
# MemoryConfig
# ---------------------------------------------------------------------------


class TestMemoryConfig:
    def test_defaults(self):
        cfg = MemoryConfig()
        assert cfg.directory_name == ".contextpilot"
        assert cfg.memory_file == "memory.json"
        assert cfg.index_file == "index.json"
        assert cfg.history_limit == 1000
        assert cfg.interaction_limit == 500
        assert cfg.recent_history == 10
        assert cfg.recent_interactions == 5


# ---------------------------------------------------------------------------
# PromptConfig / CacheConfig / DispatchConfig
# ---------------------------------------------------------------------------


class TestPromptConfig:
    def test_defaults(self):
        cfg = PromptConfig()
        assert cfg.window_lines == 10
        assert cfg.max_chars == 6000
        assert cfg.max_signatures == 40


class TestCacheConfig:
    def test_defaults(self):
        cfg = CacheConfig()
        assert cfg.completion_ttl_seconds == 30.0
        assert cfg.action_ttl_seconds == 300.0
        assert cfg.max_entries == 256
        assert cfg.strict_fingerprint is False


class TestDispatchConfig:
    def test_local_is_last_by_default(self):
        assert DispatchConfig().order[-1] == "local"


# ---------------------------------------------------------------------------
# Frozen immutability
# ---------------------------------------------------------------------------


class TestFrozen:
    def test_provider_config_frozen(self):
        cfg = ProviderConfig(name="x")
        with pytest.raises(FrozenInstanceError):
            cfg.api_key = "secret"

    def test_memory_config_frozen(self):
        cfg = MemoryConfig()
        with pytest.raises(FrozenInstanceError):
            cfg.history_limit = 5

    def test_cache_config_frozen(self):
        cfg = CacheConfig()
        with pytest.raises(FrozenInstanceError):
            cfg.max_entries = 1
