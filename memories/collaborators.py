"""Optional collaborators of a scope: vector index, embedder, provider.

Each is resolved once per scope into either `Available(value)` or
`Unavailable(reason)`. Features that need a missing collaborator fail with
a typed error; writes that merely keep the index fresh degrade to a
warning and carry on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from .config import MemConfig
from .embed import EmbedProvider, create_embed_provider
from .errors import MemError, NoIndexError, NoProviderError
from .llm import Provider, create_provider
from .models.types import Scope
from .vector import FlatVectorIndex, VectorIndex

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Available(Generic[T]):
    value: T


@dataclass(frozen=True)
class Unavailable:
    reason: str


Slot = Available[T] | Unavailable


@dataclass
class Collaborators:
    config: MemConfig
    index: Slot[VectorIndex]
    embedder: Slot[EmbedProvider]
    provider: Slot[Provider]

    @classmethod
    def resolve(cls, scope: Scope, config: MemConfig) -> Collaborators:
        embedder: Slot[EmbedProvider]
        index: Slot[VectorIndex]

        embed = create_embed_provider(config)
        if embed is None:
            embedder = Unavailable(f"no embedder (embeddings.backend={config.embeddings.backend!r})")
            index = Unavailable("vector index needs an embedder")
        else:
            embedder = Available(embed)
            vectors = FlatVectorIndex(scope.vector_path, embed.dim)
            try:
                vectors.load()
            except (OSError, ValueError, MemError) as exc:
                logger.warning("Vector index unreadable at %s: %s", scope.vector_path, exc)
                index = Unavailable(f"vector index unreadable: {exc}")
            else:
                index = Available(vectors)

        llm = create_provider(config)
        provider: Slot[Provider] = (
            Available(llm) if llm is not None else Unavailable("no provider configured")
        )
        return cls(config=config, index=index, embedder=embedder, provider=provider)

    # --- hard requirements ---

    def require_embedder(self) -> EmbedProvider:
        if isinstance(self.embedder, Unavailable):
            raise NoIndexError(self.embedder.reason)
        return self.embedder.value

    def require_search(self) -> tuple[VectorIndex, EmbedProvider]:
        embedder = self.require_embedder()
        if isinstance(self.index, Unavailable):
            raise NoIndexError(self.index.reason)
        return self.index.value, embedder

    def require_provider(self) -> Provider:
        if isinstance(self.provider, Unavailable):
            raise NoProviderError(self.provider.reason)
        return self.provider.value

    def provider_or_none(self) -> Provider | None:
        return self.provider.value if isinstance(self.provider, Available) else None

    # --- best effort ---

    async def index_memory(self, key: str, text: str) -> None:
        """Embed and index one memory; failures are logged, not raised."""
        if isinstance(self.index, Unavailable) or isinstance(self.embedder, Unavailable):
            return
        try:
            vector = await self.embedder.value.embed(text)
            self.index.value.add(key, vector)
            self.index.value.save()
        except Exception as exc:
            logger.warning("Failed to index %s: %s", key, exc)

    def forget(self, key: str) -> None:
        """Drop `key` from the index; failures are logged, not raised."""
        if isinstance(self.index, Unavailable):
            return
        try:
            if self.index.value.remove(key):
                self.index.value.save()
        except (OSError, ValueError, MemError) as exc:
            logger.warning("Failed to remove %s from index: %s", key, exc)
