"""User script strategy: hand the commit to an external program."""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys

from ..errors import HookScriptError
from ..models.types import CommitContext
from .base import CommitStrategy

logger = logging.getLogger(__name__)

SCRIPT_TIMEOUT = 120.0


class ScriptStrategy(CommitStrategy):
    """Run `script` with the diff on stdin and commit metadata in env.

    The script's own output is forwarded to stderr; it never becomes a
    memory. A script that wants to store something calls `mem` itself.
    """

    name = "script"

    def __init__(self, script: str, timeout: float = SCRIPT_TIMEOUT) -> None:
        self._script = script
        self._timeout = timeout

    async def run(self, ctx: CommitContext) -> None:
        if not self._script:
            raise HookScriptError("no script configured")
        await asyncio.to_thread(self._run_sync, ctx)

    def _run_sync(self, ctx: CommitContext) -> None:
        env = {
            **os.environ,
            "MEM_COMMIT_HASH": ctx.hash,
            "MEM_COMMIT_MSG": ctx.message,
            "MEM_COMMIT_AUTHOR": ctx.author,
        }
        logger.debug("Running hook script %s for %s", self._script, ctx.short_hash)
        try:
            result = subprocess.run(
                [self._script],
                input=ctx.diff.encode("utf-8"),
                capture_output=True,
                env=env,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise HookScriptError(f"script {self._script}: timed out after {self._timeout}s") from e
        except OSError as e:
            raise HookScriptError(f"script {self._script}: {e}") from e

        for stream in (result.stdout, result.stderr):
            if stream:
                sys.stderr.write(stream.decode("utf-8", errors="replace"))
        if result.returncode != 0:
            raise HookScriptError(f"script {self._script}: exit status {result.returncode}")
