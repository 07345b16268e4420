"""Per-scope configuration (`<store>/config.yaml`)."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import MemError
from .git import DEFAULT_TIMEOUT
from .models.types import HookStrategy

DEFAULT_KEY_PREFIX = "hooks/commits"

# Env var fallback for provider API keys.
_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
}


@dataclass
class EmbeddingsConfig:
    backend: str = "openai"  # "openai", "openrouter", or "none"
    model: str = "text-embedding-3-small"
    dimension: int = 1536


@dataclass
class ProviderConfig:
    api_key: str = ""
    base_url: str = ""
    model: str = ""


@dataclass
class HookConfig:
    """Post-commit hook settings persisted by `mem install`."""

    enabled: bool = False
    scope: str = ""
    strategy: str = HookStrategy.EXTRACT.value
    script: str = ""
    key_prefix: str = DEFAULT_KEY_PREFIX
    quiet: bool = False


@dataclass
class HooksConfig:
    post_commit: HookConfig = field(default_factory=HookConfig)


@dataclass
class MemConfig:
    """Memory store configuration for one scope."""

    embeddings: EmbeddingsConfig = field(default_factory=EmbeddingsConfig)
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    default_provider: str = ""
    git_timeout: float = DEFAULT_TIMEOUT
    hooks: HooksConfig = field(default_factory=HooksConfig)

    @classmethod
    def load(cls, config_path: Path) -> MemConfig:
        """Load configuration from YAML with environment variable overrides."""
        config_dict: dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path, encoding="utf-8") as f:
                    config_dict = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise MemError(f"parse config {config_path}: {exc}") from exc
            if not isinstance(config_dict, dict):
                raise MemError(f"Malformed config at {config_path}")

        config = cls.from_dict(config_dict)

        # Environment variable overrides (MEM_ prefix)
        env_map = {
            "MEM_EMBED_BACKEND": (config.embeddings, "backend", str),
            "MEM_EMBED_MODEL": (config.embeddings, "model", str),
            "MEM_DEFAULT_PROVIDER": (config, "default_provider", str),
            "MEM_GIT_TIMEOUT": (config, "git_timeout", float),
        }
        for env_var, (target, attr, converter) in env_map.items():
            value = os.getenv(env_var)
            if value is not None:
                setattr(target, attr, converter(value))

        return config

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> MemConfig:
        providers_raw = raw.get("providers") or {}
        hooks_raw = raw.get("hooks") or {}
        config = cls(
            embeddings=_build(EmbeddingsConfig, raw.get("embeddings")),
            providers={
                str(name): _build(ProviderConfig, value)
                for name, value in providers_raw.items()
            },
            hooks=HooksConfig(post_commit=_build(HookConfig, hooks_raw.get("post_commit"))),
        )
        if "default_provider" in raw:
            config.default_provider = str(raw["default_provider"] or "")
        if "git_timeout" in raw:
            config.git_timeout = float(raw["git_timeout"])
        return config

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(asdict(self), f, default_flow_style=False, sort_keys=False)

    def get_api_key(self, provider: str) -> str | None:
        """API key for a provider: config value first, then env var fallback."""
        configured = self.providers.get(provider)
        config_val = configured.api_key if configured else ""
        env_var = _API_KEY_ENV.get(provider, "")
        return config_val or (os.getenv(env_var, "") if env_var else "") or None


def _build(cls: type, raw: Any) -> Any:
    """Instantiate a config dataclass from a mapping, ignoring unknown keys."""
    if not isinstance(raw, dict):
        return cls()
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in raw.items() if k in known})


def get_default_config_content() -> str:
    """Default config file content written by `mem init`."""
    return """\
# memories configuration for this scope
embeddings:
  backend: openai                     # "openai", "openrouter", or "none"
  model: text-embedding-3-small
  dimension: 1536

# Text-completion providers: mem provider add <name> --model ... --api-key ...
providers: {}
default_provider: ""

git_timeout: 30.0                     # Seconds before a git call is abandoned

hooks:
  post_commit:
    enabled: false                    # Set by `mem install`
    scope: ""
    strategy: extract                 # "extract", "summarize", "script", or "all"
    script: ""
    key_prefix: hooks/commits
    quiet: false
"""
