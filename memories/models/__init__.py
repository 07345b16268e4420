"""Domain models."""

from .types import (
    AutoTag,
    Branch,
    ChangeStatus,
    Commit,
    CommitContext,
    FileChange,
    HookStrategy,
    Memory,
    Metadata,
    Scope,
    ScopeType,
    SearchResult,
    Summary,
    validate_key,
)

__all__ = [
    "AutoTag",
    "Branch",
    "ChangeStatus",
    "Commit",
    "CommitContext",
    "FileChange",
    "HookStrategy",
    "Memory",
    "Metadata",
    "Scope",
    "ScopeType",
    "SearchResult",
    "Summary",
    "validate_key",
]
