"""Base interface for post-commit strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models.types import CommitContext


class CommitStrategy(ABC):
    """Turns one code-repository commit into (optionally) a memory.

    Subclasses implement `run()`, which returns the text to store, or
    None/"" when there is nothing to store. Failures are raised; the
    pipeline decides how loudly to report them.
    """

    name: str = ""

    @abstractmethod
    async def run(self, ctx: CommitContext) -> str | None:
        """Process a commit. Returns memory content or raises on failure."""
