"""Versioned key-value store.

Each memory is one file under the scope root whose bytes are the memory's
content; the key is the file's path relative to the root. Writes are
staged but never committed here: history lives in `HistoryController`.
There is no locking, so concurrent writers to one key race on the file.
"""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from . import SENTINEL_FILE, STORE_DIR
from .errors import InvalidKeyError, NotFoundError, StorageError
from .git import GitEngine
from .models.types import Memory, validate_key

logger = logging.getLogger(__name__)

_PRUNED_DIRS = {STORE_DIR, ".git"}


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)


class VersionedStore:
    """CRUD over memories for one open scope."""

    def __init__(self, engine: GitEngine) -> None:
        self._engine = engine
        self._root = engine.root

    @property
    def engine(self) -> GitEngine:
        return self._engine

    def _path(self, key: str) -> Path:
        path = self._root / validate_key(key)
        segments = key.split("/")
        if ".." in segments:
            raise InvalidKeyError(f"key escapes the store root: {key!r}")
        if "" in segments:
            raise InvalidKeyError(f"key has an empty segment: {key!r}")
        return path

    def get(self, key: str) -> Memory:
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(f"memory not found: {key}")
        modified = _mtime(path)
        return Memory(
            key=key,
            content=path.read_bytes(),
            created_at=modified,
            updated_at=modified,
        )

    def save(self, key: str, content: bytes | str) -> None:
        """Write `content` at `key` and stage it."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise StorageError(f"save {key}: {exc.strerror or exc}") from exc
        self._engine.add(key)
        logger.debug("Staged %s (%d bytes)", key, len(content))

    def delete(self, key: str) -> None:
        """Unstage and remove `key`."""
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(f"memory not found: {key}")
        try:
            self._engine.remove(key)
        except OSError as exc:
            raise StorageError(f"delete {key}: {exc.strerror or exc}") from exc
        logger.debug("Removed %s", key)

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def list(self, prefix: str = "") -> list[Memory]:
        """All memories whose key starts with `prefix` (plain string prefix)."""
        memories: list[Memory] = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            current = Path(dirpath)
            # Other stores nested below this root (and git dirs, which git
            # never tracks) are pruned at every depth.
            dirnames[:] = [d for d in dirnames if d not in _PRUNED_DIRS]
            filenames = [f for f in filenames if f != SENTINEL_FILE]
            if current == self._root:
                # Keys never start with ".".
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            dirnames.sort()
            for name in sorted(filenames):
                path = current / name
                key = path.relative_to(self._root).as_posix()
                if prefix and not key.startswith(prefix):
                    continue
                try:
                    validate_key(key)
                except InvalidKeyError:
                    continue
                modified = _mtime(path)
                memories.append(
                    Memory(
                        key=key,
                        content=path.read_bytes(),
                        created_at=modified,
                        updated_at=modified,
                    )
                )
        return sorted(memories, key=lambda m: m.key)
