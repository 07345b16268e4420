"""Core domain models for the memory store.

These are product-level concepts. The git engine and the on-disk layout
are built from them but the models stay storage-agnostic.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import InvalidKeyError

KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/-]*$")


def validate_key(raw: str) -> str:
    """Return `raw` if it is a valid memory key, else raise InvalidKeyError."""
    if not raw or not KEY_PATTERN.match(raw):
        raise InvalidKeyError(f"invalid key: {raw!r}")
    return raw


# --- Enums ---


class ScopeType(StrEnum):
    PROJECT = "project"
    GLOBAL = "global"


class HookStrategy(StrEnum):
    EXTRACT = "extract"
    SUMMARIZE = "summarize"
    SCRIPT = "script"
    ALL = "all"


class ChangeStatus(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


# --- Core Models ---


class Metadata(BaseModel):
    tags: list[str] = Field(default_factory=list)
    mime_type: str = ""


class Memory(BaseModel):
    """One memory entry. Persisted as exactly one file holding `content`."""

    key: str
    content: bytes
    metadata: Metadata = Field(default_factory=Metadata)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("key")
    @classmethod
    def _check_key(cls, value: str) -> str:
        return validate_key(value)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class Scope(BaseModel):
    """Which physical store governs an operation.

    `store_path` holds the git metadata and lives beside, not inside, the
    tracked tree rooted at `root_path`.
    """

    model_config = ConfigDict(frozen=True)

    type: ScopeType
    root_path: Path
    store_path: Path

    @property
    def vector_path(self) -> Path:
        return self.store_path / "vectors"

    @property
    def config_path(self) -> Path:
        return self.store_path / "config.yaml"

    @property
    def ignore_path(self) -> Path:
        return self.root_path / ".memignore"


class Branch(BaseModel):
    name: str
    head: str
    created_at: datetime | None = None


class Commit(BaseModel):
    """An immutable snapshot of staged changes."""

    model_config = ConfigDict(frozen=True)

    hash: str
    message: str
    author: str
    timestamp: datetime
    parents: list[str] = Field(default_factory=list)

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class CommitContext(BaseModel):
    """Hook input describing the commit that just landed."""

    hash: str
    message: str = ""
    author: str = ""
    diff: str = ""

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class FileChange(BaseModel):
    """One path's working-tree status relative to HEAD."""

    path: str
    status: ChangeStatus


class SearchResult(BaseModel):
    key: str
    score: float  # 0-1, higher is better


# --- Structured provider output ---


class Summary(BaseModel):
    title: str = ""
    overview: str = ""
    key_points: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class AutoTag(BaseModel):
    tags: list[str] = Field(default_factory=list)
    category: str = ""
    confidence: float = 0.0
