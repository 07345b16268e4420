"""Model-written commit summary."""

from __future__ import annotations

from ..errors import NoProviderError
from ..llm import Provider
from ..models.types import CommitContext
from .base import CommitStrategy

SUMMARIZE_PROMPT = """\
Summarize the following git commit in 1-3 sentences.
Focus on what changed and why.

Commit: {hash}
Message: {message}

Diff:
{diff}"""


class SummarizeStrategy(CommitStrategy):
    name = "summarize"

    def __init__(self, provider: Provider | None) -> None:
        self._provider = provider

    async def run(self, ctx: CommitContext) -> str:
        if self._provider is None:
            raise NoProviderError("no provider configured: skipping summarize")
        prompt = SUMMARIZE_PROMPT.format(hash=ctx.hash, message=ctx.message, diff=ctx.diff)
        return (await self._provider.complete(prompt)).strip()
