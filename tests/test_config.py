"""Tests for configuration management."""

import pytest
import yaml

from memories.config import HookConfig, MemConfig, ProviderConfig, get_default_config_content
from memories.errors import MemError


def test_config_defaults():
    config = MemConfig()
    assert config.embeddings.backend == "openai"
    assert config.embeddings.dimension == 1536
    assert config.providers == {}
    assert config.default_provider == ""
    assert config.git_timeout == 30.0
    assert config.hooks.post_commit.enabled is False
    assert config.hooks.post_commit.strategy == "extract"
    assert config.hooks.post_commit.key_prefix == "hooks/commits"


def test_missing_file_gives_defaults(tmp_path):
    loaded = MemConfig.load(tmp_path / "nope.yaml")
    assert loaded == MemConfig()


def test_config_save_load_roundtrip(tmp_path):
    config_path = tmp_path / "config.yaml"

    original = MemConfig(default_provider="openai", git_timeout=5.0)
    original.providers["openai"] = ProviderConfig(model="gpt-4.1-mini")
    original.hooks.post_commit = HookConfig(enabled=True, strategy="all", quiet=True)
    original.save(config_path)

    loaded = MemConfig.load(config_path)
    assert loaded.default_provider == "openai"
    assert loaded.git_timeout == 5.0
    assert loaded.providers["openai"].model == "gpt-4.1-mini"
    assert loaded.hooks.post_commit.strategy == "all"
    assert loaded.hooks.post_commit.quiet is True
    assert loaded.embeddings.model == "text-embedding-3-small"  # default preserved


def test_config_env_override(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    MemConfig().save(config_path)

    monkeypatch.setenv("MEM_EMBED_BACKEND", "none")
    monkeypatch.setenv("MEM_DEFAULT_PROVIDER", "anthropic")
    monkeypatch.setenv("MEM_GIT_TIMEOUT", "2.5")

    loaded = MemConfig.load(config_path)
    assert loaded.embeddings.backend == "none"
    assert loaded.default_provider == "anthropic"
    assert loaded.git_timeout == 2.5


def test_config_ignores_unknown_fields(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("unknown_field: 42\nembeddings:\n  backend: none\n  extra: 1\n")

    loaded = MemConfig.load(config_path)
    assert loaded.embeddings.backend == "none"
    assert not hasattr(loaded, "unknown_field")


def test_malformed_yaml_raises(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("embeddings: [unclosed\n")
    with pytest.raises(MemError):
        MemConfig.load(config_path)


def test_non_mapping_raises(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n")
    with pytest.raises(MemError):
        MemConfig.load(config_path)


def test_api_key_prefers_config_then_env(monkeypatch):
    config = MemConfig(providers={"openai": ProviderConfig(api_key="from-config")})
    assert config.get_api_key("openai") == "from-config"

    monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")
    assert config.get_api_key("anthropic") == "from-env"
    assert config.get_api_key("claude") == "from-env"
    assert config.get_api_key("openrouter") is None
    assert config.get_api_key("custom") is None


def test_default_content_parses_to_defaults():
    raw = yaml.safe_load(get_default_config_content())
    assert MemConfig.from_dict(raw) == MemConfig()
