"""Commit / log / diff / revert over an open store."""

from __future__ import annotations

import logging

from .errors import GitError
from .git import GitEngine
from .models.types import ChangeStatus, Commit, FileChange

logger = logging.getLogger(__name__)


def _block(sign: str, content: str) -> list[str]:
    return [f"{sign}{line}" for line in content.split("\n")]


class HistoryController:
    """History operations; commits use the store's own identity."""

    def __init__(self, engine: GitEngine) -> None:
        self._engine = engine

    def commit(self, message: str) -> Commit:
        """Commit everything staged as one snapshot. Raises if nothing is staged."""
        commit = self._engine.commit(message)
        logger.info("Committed %s: %s", commit.short_hash, commit.message)
        return commit

    def log(self, limit: int = 0) -> list[Commit]:
        """Commits reachable from the current head, newest first. `limit <= 0` is unbounded."""
        return self._engine.log(limit)

    def show(self, ref: str) -> Commit:
        return self._engine.show(ref)

    def diff(self, ref: str = "") -> str:
        """Changes against HEAD.

        With no ref this is a pseudo-diff of staged paths: each file is
        rendered as its whole old content followed by its whole new content
        rather than a minimal hunk set. With a ref it is a real patch from
        that revision's tree to HEAD's tree.
        """
        if ref:
            return self._engine.diff_trees(ref)
        return self._pseudo_diff()

    def status(self) -> list[FileChange]:
        return self._engine.status()

    def revert(self, ref: str) -> None:
        """Hard-reset the working tree and branch to `ref`. Uncommitted work is lost."""
        self._engine.reset_hard(ref)
        logger.info("Reset to %s", ref)

    def _pseudo_diff(self) -> str:
        lines: list[str] = []
        for change in self._engine.status():
            path = change.path
            try:
                if change.status == ChangeStatus.ADDED:
                    new = self._working_text(path)
                    lines += ["--- /dev/null", f"+++ b/{path}", *_block("+", new)]
                elif change.status == ChangeStatus.MODIFIED:
                    old = self._head_text(path)
                    new = self._working_text(path)
                    lines += [f"--- a/{path}", f"+++ b/{path}", *_block("-", old), *_block("+", new)]
                elif change.status == ChangeStatus.DELETED:
                    old = self._head_text(path)
                    lines += [f"--- a/{path}", "+++ /dev/null", *_block("-", old)]
            except (OSError, GitError) as exc:
                logger.debug("Skipping %s in diff: %s", path, exc)
        if not lines:
            return ""
        return "\n".join(lines) + "\n"

    def _working_text(self, path: str) -> str:
        return (self._engine.root / path).read_bytes().decode("utf-8", errors="replace")

    def _head_text(self, path: str) -> str:
        return self._engine.show_file(path).decode("utf-8", errors="replace")
