"""Exception taxonomy for the memory store."""

from __future__ import annotations


class MemError(RuntimeError):
    """Base memory store error."""


class NotFoundError(MemError):
    """Key, branch, or ref does not exist."""


class InvalidKeyError(MemError, ValueError):
    """Key fails validation."""


class IgnoredKeyError(MemError):
    """Key is blocked by the scope's .memignore file."""


class NotInitializedError(MemError):
    """No store exists at the resolved scope."""


class AlreadyInitializedError(MemError):
    """A store already exists at the target location."""


class NoIndexError(MemError):
    """No vector index / embedder is available for the scope."""


class NoProviderError(MemError):
    """No text-completion provider is configured."""


class GitError(MemError):
    """The version-control engine failed."""


class NothingToCommitError(GitError):
    """Commit was requested with no staged changes."""


class CurrentBranchError(MemError):
    """Operation is not allowed on the checked-out branch."""


class HookConflictError(MemError):
    """An unmanaged hook is in the way."""


class HookScriptError(MemError):
    """A user hook script exited unsuccessfully."""


class StorageError(MemError):
    """Reading or writing a memory file failed."""
