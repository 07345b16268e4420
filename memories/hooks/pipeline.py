"""Post-commit hook pipeline.

`install` drops a small shell shim into the enclosing code repository's
`.git/hooks/post-commit` that calls `mem hook run post-commit`; `run_hook`
is what that call ends up in. Hook runs never fail the commit: every
strategy error becomes a warning.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TextIO

from ..config import DEFAULT_KEY_PREFIX, HookConfig, MemConfig
from ..errors import HookConflictError, MemError
from ..git import find_git_dir
from ..llm import Provider
from ..models.types import CommitContext, HookStrategy, Scope
from ..reindex import ReindexQueue
from .base import CommitStrategy
from .extract import ExtractStrategy
from .script import ScriptStrategy
from .summarize import SummarizeStrategy

logger = logging.getLogger(__name__)

HOOK_TYPE = "post-commit"
HOOK_MARKER = "# mem: managed post-commit hook"
BACKUP_SUFFIX = ".bak"

StoreFn = Callable[[str, str], Awaitable[None]]


def hook_script(hook_type: str = HOOK_TYPE) -> str:
    """Shell shim written into the code repository's hooks directory."""
    return f'#!/bin/sh\n{HOOK_MARKER}\nexec mem hook run {hook_type} "$@"\n'


def is_managed_hook(content: str) -> bool:
    return HOOK_MARKER in content


class HookPipeline:
    """Install, uninstall, and run the post-commit hook for one scope."""

    def __init__(
        self,
        scope: Scope,
        store_fn: StoreFn | None = None,
        provider: Provider | None = None,
        reindex: ReindexQueue | None = None,
        config: MemConfig | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self._scope = scope
        self._store_fn = store_fn
        self._provider = provider
        self._reindex = reindex
        self._config = config
        self._stderr = stderr

    @property
    def config(self) -> MemConfig:
        if self._config is None:
            self._config = MemConfig.load(self._scope.config_path)
        return self._config

    def _hook_path(self) -> Path:
        git_dir = find_git_dir(self._scope.root_path)
        if git_dir is None:
            raise MemError(f"not a git repository (no .git found above {self._scope.root_path})")
        return git_dir / "hooks" / HOOK_TYPE

    # --- install / uninstall ---

    def install(
        self,
        strategy: str = HookStrategy.EXTRACT.value,
        script: str = "",
        force: bool = False,
        scope_hint: str = "",
    ) -> Path:
        """Write the shim and enable the hook in config. Returns the hook path."""
        try:
            strategy = HookStrategy(strategy or HookStrategy.EXTRACT).value
        except ValueError:
            raise MemError(f"unknown hook strategy: {strategy}") from None
        if strategy == HookStrategy.SCRIPT and not script:
            raise MemError("strategy 'script' needs --script")

        hook_path = self._hook_path()
        hook_path.parent.mkdir(parents=True, exist_ok=True)

        if hook_path.exists():
            existing = hook_path.read_text(encoding="utf-8", errors="replace")
            if not is_managed_hook(existing):
                if not force:
                    raise HookConflictError(
                        f"hook already exists at {hook_path} (use --force to overwrite)"
                    )
                backup = hook_path.with_name(hook_path.name + BACKUP_SUFFIX)
                backup.write_bytes(hook_path.read_bytes())
                backup.chmod(0o755)
                logger.info("Backed up existing hook to %s", backup)

        hook_path.write_text(hook_script(), encoding="utf-8")
        hook_path.chmod(0o755)

        config = self.config
        config.hooks.post_commit = HookConfig(
            enabled=True,
            scope=scope_hint,
            strategy=strategy,
            script=script,
            key_prefix=DEFAULT_KEY_PREFIX,
        )
        config.save(self._scope.config_path)
        logger.info("Installed %s hook at %s (strategy=%s)", HOOK_TYPE, hook_path, strategy)
        return hook_path

    def uninstall(self, keep_config: bool = False) -> None:
        hook_path = self._hook_path()

        if hook_path.exists():
            content = hook_path.read_text(encoding="utf-8", errors="replace")
            if not is_managed_hook(content):
                raise HookConflictError(f"hook at {hook_path} is not managed by mem")
            backup = hook_path.with_name(hook_path.name + BACKUP_SUFFIX)
            if backup.exists():
                hook_path.write_bytes(backup.read_bytes())
                hook_path.chmod(0o755)
                backup.unlink()
                logger.info("Restored previous hook from %s", backup)
            else:
                hook_path.unlink()

        if not keep_config:
            config = self.config
            config.hooks.post_commit = HookConfig()
            config.save(self._scope.config_path)

    # --- run ---

    def _warn(self, quiet: bool, msg: str, *args: object) -> None:
        text = msg % args if args else msg
        logger.warning("hook warning: %s", text)
        if not quiet:
            print(f"mem hook: {text}", file=self._stderr or sys.stderr)

    async def run_hook(self, hook_type: str, ctx: CommitContext) -> list[str]:
        """Run the configured strategies for one commit. Returns the keys written."""
        hc = self.config.hooks.post_commit
        if hook_type != HOOK_TYPE or not hc.enabled or not ctx.diff:
            logger.debug("Hook %s skipped (enabled=%s)", hook_type, hc.enabled)
            return []

        base_key = f"{hc.key_prefix or DEFAULT_KEY_PREFIX}/{ctx.short_hash}"
        try:
            strategy = HookStrategy(hc.strategy or HookStrategy.EXTRACT)
        except ValueError:
            self._warn(hc.quiet, "unknown strategy %r", hc.strategy)
            return []

        plan: list[tuple[CommitStrategy, str]] = []
        if strategy in (HookStrategy.EXTRACT, HookStrategy.ALL):
            plan.append((ExtractStrategy(), base_key))
        if strategy == HookStrategy.SUMMARIZE:
            plan.append((SummarizeStrategy(self._provider), base_key))
        if strategy == HookStrategy.ALL:
            plan.append((SummarizeStrategy(self._provider), f"{base_key}/summary"))
        if strategy == HookStrategy.SCRIPT or (strategy == HookStrategy.ALL and hc.script):
            plan.append((ScriptStrategy(hc.script), ""))

        written: list[str] = []
        for handler, key in plan:
            try:
                result = await handler.run(ctx)
            except Exception as e:
                self._warn(hc.quiet, "%s: %s", handler.name, e)
                continue
            if not result or not key or self._store_fn is None:
                continue
            try:
                await self._store_fn(key, result)
                written.append(key)
            except Exception as e:
                self._warn(hc.quiet, "%s store: %s", handler.name, e)

        if self._reindex is not None:
            try:
                self._reindex.request()
            except Exception as e:
                self._warn(hc.quiet, "reindex failed: %s", e)

        return written
