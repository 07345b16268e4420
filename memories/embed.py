"""Embedding providers for semantic search.

Provider resolution (`embeddings.backend` in the scope config):
  - "openai"     → requires OPENAI_API_KEY
  - "openrouter" → requires OPENROUTER_API_KEY
  - "none"       → semantic search disabled
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .config import MemConfig
from .llm import OPENROUTER_BASE_URL

logger = logging.getLogger(__name__)

# Known dimensions per model (for auto-detection without probing)
_MODEL_DIMS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbedProvider(ABC):
    """Turns text into a fixed-width vector."""

    @property
    @abstractmethod
    def dim(self) -> int:
        """Embedding dimension for this provider."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one piece of text."""


class OpenAIEmbedProvider(EmbedProvider):
    """OpenAI API embeddings (direct or via OpenRouter)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        dimension: int = 0,
    ) -> None:
        from openai import AsyncOpenAI

        self._model = model
        self._client = AsyncOpenAI(
            api_key=api_key,
            **({"base_url": base_url} if base_url else {}),
        )
        self._dim = _MODEL_DIMS.get(model, dimension)

    @property
    def dim(self) -> int:
        return self._dim

    async def embed(self, text: str) -> list[float]:
        resp = await self._client.embeddings.create(model=self._model, input=text)
        vec = resp.data[0].embedding
        # Auto-detect dimension on first call if unknown model
        if self._dim == 0:
            self._dim = len(vec)
        return vec


def create_embed_provider(config: MemConfig) -> EmbedProvider | None:
    """Create an embedding provider from config, or None when unavailable."""
    backend = config.embeddings.backend
    model = config.embeddings.model

    if backend == "none" or not backend:
        logger.debug("Embeddings disabled by config")
        return None

    if backend == "openai":
        api_key = config.get_api_key("openai")
        if api_key:
            return OpenAIEmbedProvider(api_key, model, dimension=config.embeddings.dimension)
        logger.warning("embeddings.backend='openai' but no OpenAI API key configured")
        return None

    if backend == "openrouter":
        api_key = config.get_api_key("openrouter")
        if api_key:
            return OpenAIEmbedProvider(
                api_key,
                model,
                base_url=OPENROUTER_BASE_URL,
                dimension=config.embeddings.dimension,
            )
        logger.warning("embeddings.backend='openrouter' but no OpenRouter API key configured")
        return None

    logger.warning("Unknown embeddings backend %r, semantic search disabled", backend)
    return None
