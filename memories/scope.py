"""Scope resolution: which physical store governs an operation.

Two stores can be in play: a project store discovered by walking up from
the working directory, and the user-global store under the home
directory. Reads cascade project -> global so nearer entries shadow
farther ones; writes go to a single resolved scope.
"""

from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path

from . import STORE_DIR
from .models.types import Scope, ScopeType


@dataclass(frozen=True)
class MemPaths:
    """Process-level locations, built once at startup and passed down."""

    home: Path
    cwd: Path

    @classmethod
    def from_environment(cls) -> MemPaths:
        """Read HOME (overridable with MEM_HOME) and the working directory."""
        home = os.getenv("MEM_HOME")
        return cls(
            home=Path(home).expanduser() if home else Path.home(),
            cwd=Path.cwd(),
        )


class ScopeResolver:
    """Resolve scope hints against a fixed `MemPaths`."""

    def __init__(self, paths: MemPaths) -> None:
        self._paths = paths

    @property
    def paths(self) -> MemPaths:
        return self._paths

    def global_scope(self) -> Scope:
        home = self._paths.home
        return Scope(type=ScopeType.GLOBAL, root_path=home, store_path=home / STORE_DIR)

    def project(self) -> Scope | None:
        """Nearest enclosing project store, or None."""
        global_store = (self._paths.home / STORE_DIR).resolve()
        current = self._paths.cwd.resolve()
        while True:
            candidate = current / STORE_DIR
            # The home store is the global scope, never a project one.
            if candidate.is_dir() and candidate.resolve() != global_store:
                return Scope(type=ScopeType.PROJECT, root_path=current, store_path=candidate)
            if current.parent == current:
                return None
            current = current.parent

    def project_at(self, root: Path) -> Scope:
        """Project scope rooted exactly at `root` (used by `init`)."""
        root = Path(root)
        return Scope(type=ScopeType.PROJECT, root_path=root, store_path=root / STORE_DIR)

    def resolve(self, hint: str = "") -> Scope:
        if hint == ScopeType.GLOBAL:
            return self.global_scope()
        return self.project() or self.global_scope()

    def cascade(self) -> list[Scope]:
        scopes: list[Scope] = []
        project = self.project()
        if project is not None:
            scopes.append(project)
        scopes.append(self.global_scope())
        return scopes

    def env_vars(self, scope: Scope, branch: str, version: str) -> dict[str, str]:
        """Environment handed to external `mem-<name>` commands."""
        mem_bin = shutil.which("mem") or sys.argv[0]
        return {
            "MEM_SCOPE": str(scope.type),
            "MEM_SCOPE_PATH": str(scope.store_path),
            "MEM_ROOT": str(scope.root_path),
            "MEM_BRANCH": branch,
            "MEM_CONFIG": str(scope.config_path),
            "MEM_VERSION": version,
            "MEM_BIN": mem_bin,
        }
