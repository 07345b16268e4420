"""Branch pointer operations over an open store."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from .errors import CurrentBranchError, MemError, NotFoundError
from .git import GitEngine
from .models.types import Branch

logger = logging.getLogger(__name__)


class BranchController:
    def __init__(self, engine: GitEngine) -> None:
        self._engine = engine

    def current(self) -> Branch:
        return Branch(name=self._engine.head_branch(), head=self._engine.rev_parse("HEAD"))

    def list(self) -> list[Branch]:
        return [Branch(name=name, head=sha) for name, sha in self._engine.branches()]

    def create(self, name: str) -> Branch:
        """New branch at HEAD. Does not switch to it."""
        if self._engine.branch_exists(name):
            raise MemError(f"branch already exists: {name}")
        head = self._engine.update_ref(f"refs/heads/{name}")
        logger.info("Created branch %s at %s", name, head[:7])
        return Branch(name=name, head=head, created_at=datetime.now(UTC))

    def switch(self, name: str) -> None:
        """Check out `name`, replacing tracked working-tree files.

        Uncommitted changes are not stashed; the caller must not have any
        that conflict with the target branch.
        """
        if not self._engine.branch_exists(name):
            raise NotFoundError(f"branch not found: {name}")
        self._engine.checkout(name)
        logger.info("Switched to branch %s", name)

    def delete(self, name: str) -> None:
        if self._engine.head_branch() == name:
            raise CurrentBranchError(f"cannot delete current branch: {name}")
        if not self._engine.branch_exists(name):
            raise NotFoundError(f"branch not found: {name}")
        self._engine.delete_ref(f"refs/heads/{name}")
        logger.info("Deleted branch %s", name)
