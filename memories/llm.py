"""Text-completion providers.

One interface, `Provider`, with one implementation per backend:
- OpenAI: OpenAI SDK direct
- OpenRouter: OpenAI SDK with custom base_url, one key for all models
- Anthropic: Anthropic SDK direct

`create_provider` resolves the scope's configured provider once; a None
result means "no provider" and only features that need one degrade.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from .config import MemConfig, ProviderConfig
from .errors import MemError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

SYSTEM_PROMPT = (
    "You are a concise assistant working over a developer's versioned "
    "memory store. Answer with only what was asked."
)

# Default models per backend (cheap + fast + good at summarization)
_DEFAULT_MODELS: dict[str, str] = {
    "openrouter": "anthropic/claude-haiku-4-5-20251001",
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4.1-mini",
}

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class Provider(ABC):
    """Text-completion backend."""

    name: str = ""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Return the model's completion for `prompt`."""

    async def generate_object(self, prompt: str, schema: type[T]) -> T:
        """Ask for JSON matching `schema` and validate the reply."""
        instruction = (
            f"{prompt}\n\nRespond with a single JSON object matching this JSON schema, "
            f"and nothing else:\n{json.dumps(schema.model_json_schema())}"
        )
        raw = (await self.complete(instruction)).strip()
        fenced = _FENCE_RE.match(raw)
        if fenced:
            raw = fenced.group(1)
        try:
            return schema.model_validate_json(raw)
        except ValidationError as exc:
            raise MemError(f"{self.name}: reply did not match {schema.__name__}: {exc}") from exc


class OpenAIProvider(Provider):
    """OpenAI chat completions (direct or via OpenRouter)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 600,
        name: str = "openai",
    ) -> None:
        from openai import AsyncOpenAI

        self.name = name
        self._model = model
        self._max_tokens = max_tokens
        self._client = AsyncOpenAI(
            api_key=api_key,
            **({"base_url": base_url} if base_url else {}),
        )

    async def complete(self, prompt: str) -> str:
        resp = await self._client.chat.completions.create(
            model=self._model,
            max_tokens=self._max_tokens,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
        return resp.choices[0].message.content or ""


class AnthropicProvider(Provider):
    name = "anthropic"

    def __init__(self, api_key: str, model: str, max_tokens: int = 600) -> None:
        from anthropic import AsyncAnthropic

        self._model = model
        self._max_tokens = max_tokens
        self._client = AsyncAnthropic(api_key=api_key)

    async def complete(self, prompt: str) -> str:
        resp = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        return resp.content[0].text


def create_provider(config: MemConfig, name: str | None = None) -> Provider | None:
    """Build the named (or default) provider from config.

    Returns None when no provider is configured or its API key is missing.
    """
    name = name or config.default_provider
    if not name:
        logger.debug("No default provider configured")
        return None

    settings = config.providers.get(name)
    if settings is None:
        logger.warning("Provider %r is not registered", name)
        return None
    return build_provider(name, settings, config.get_api_key(name))


def build_provider(
    name: str,
    settings: ProviderConfig,
    api_key: str | None,
) -> Provider | None:
    if not api_key:
        logger.warning("No API key for provider %r, provider disabled", name)
        return None

    model = settings.model or _DEFAULT_MODELS.get(name, "")

    if name == "openai":
        return OpenAIProvider(api_key, model, base_url=settings.base_url or None)

    if name == "openrouter":
        return OpenAIProvider(
            api_key,
            model,
            base_url=settings.base_url or OPENROUTER_BASE_URL,
            name="openrouter",
        )

    if name in ("anthropic", "claude"):
        return AnthropicProvider(api_key, model)

    # Any other name is treated as an OpenAI-compatible endpoint.
    if settings.base_url:
        return OpenAIProvider(api_key, model, base_url=settings.base_url, name=name)

    logger.warning("Unknown provider %r without base_url, provider disabled", name)
    return None
