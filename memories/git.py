"""Git engine adapter.

The store overlays key-value semantics on a plain git repository whose
metadata directory (the store path) is decoupled from the tracked working
tree (the scope root). Every call passes `--git-dir` and `--work-tree`
explicitly, so the store never collides with a project's own `.git`.

Also provides the lenient helpers the post-commit hook uses to describe
the commit that triggered it in the *code* repository.
"""

from __future__ import annotations

import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path

from . import SENTINEL_FILE
from .errors import GitError, NotFoundError, NotInitializedError, NothingToCommitError
from .models.types import ChangeStatus, Commit, CommitContext, FileChange, Scope

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"
DEFAULT_AUTHOR = "mem"
DEFAULT_EMAIL = "mem@local"
DEFAULT_TIMEOUT = 30.0

# Field / record separators for machine-readable log output.
_FS = "\x1f"
_RS = "\x1e"
_LOG_FORMAT = f"%H{_FS}%an{_FS}%aI{_FS}%P{_FS}%B{_RS}"

_STATUS_CODES = {
    "A": ChangeStatus.ADDED,
    "M": ChangeStatus.MODIFIED,
    "D": ChangeStatus.DELETED,
}


def _clean_env() -> dict[str, str]:
    """Environment for store calls.

    Inside a post-commit hook git exports GIT_DIR, GIT_INDEX_FILE and
    friends for the code repository; they must not leak into the store.
    """
    env = {k: v for k, v in os.environ.items() if not k.startswith("GIT_")}
    env.update(
        {
            "GIT_AUTHOR_NAME": DEFAULT_AUTHOR,
            "GIT_AUTHOR_EMAIL": DEFAULT_EMAIL,
            "GIT_COMMITTER_NAME": DEFAULT_AUTHOR,
            "GIT_COMMITTER_EMAIL": DEFAULT_EMAIL,
            "GIT_TERMINAL_PROMPT": "0",
        }
    )
    return env


class GitEngine:
    """One open store: a git dir at `git_dir` tracking files under `root`."""

    def __init__(
        self,
        root: Path,
        git_dir: Path,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self.root = Path(root)
        self.git_dir = Path(git_dir)
        self.timeout = timeout

    # --- lifecycle ---

    @classmethod
    def init(
        cls,
        root: Path,
        git_dir: Path,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> GitEngine:
        """Create a repository at `git_dir` and seed it with the sentinel commit."""
        root = Path(root)
        git_dir = Path(git_dir)
        git_dir.mkdir(parents=True, exist_ok=True)
        engine = cls(root, git_dir, timeout)
        engine._git("init", "--quiet")
        engine._git("symbolic-ref", "HEAD", f"refs/heads/{DEFAULT_BRANCH}")

        # Keep the store directory out of its own working tree.
        try:
            rel = git_dir.resolve().relative_to(root.resolve())
        except ValueError:
            rel = None
        if rel is not None:
            exclude = git_dir / "info" / "exclude"
            exclude.parent.mkdir(parents=True, exist_ok=True)
            with open(exclude, "a", encoding="utf-8") as fp:
                fp.write(f"/{rel.as_posix()}/\n")

        (root / SENTINEL_FILE).write_text("mem repository initialized\n", encoding="utf-8")
        engine.add(SENTINEL_FILE)
        engine.commit("init: initialize mem repository")
        logger.info("Initialized store at %s (root=%s)", git_dir, root)
        return engine

    @classmethod
    def open(cls, scope: Scope, timeout: float | None = DEFAULT_TIMEOUT) -> GitEngine:
        if not scope.store_path.is_dir():
            raise NotInitializedError(f"repository not initialized: {scope.store_path}")
        return cls(scope.root_path, scope.store_path, timeout)

    # --- low level ---

    def _git(
        self,
        *args: str,
        input: bytes | None = None,
        ok_codes: tuple[int, ...] = (0,),
    ) -> subprocess.CompletedProcess[bytes]:
        cmd = ["git", f"--git-dir={self.git_dir}", f"--work-tree={self.root}", *args]
        logger.debug("git %s", " ".join(args))
        try:
            result = subprocess.run(
                cmd,
                cwd=self.root,
                input=input,
                capture_output=True,
                env=_clean_env(),
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitError(f"git {args[0]}: timed out after {self.timeout}s") from exc
        except (FileNotFoundError, OSError) as exc:
            raise GitError(f"git {args[0]}: {exc}") from exc
        if result.returncode not in ok_codes:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise GitError(f"git {args[0]}: {stderr or f'exit {result.returncode}'}")
        return result

    def _text(self, *args: str) -> str:
        return self._git(*args).stdout.decode("utf-8", errors="replace")

    # --- staging ---

    def add(self, rel_path: str) -> None:
        self._git("add", "--", rel_path)

    def remove(self, rel_path: str) -> None:
        """Unstage `rel_path` (recording a deletion) and remove it from disk."""
        self._git("rm", "--quiet", "--cached", "--ignore-unmatch", "--", rel_path)
        path = self.root / rel_path
        if path.exists():
            path.unlink()

    def has_staged_changes(self) -> bool:
        result = self._git("diff", "--cached", "--quiet", ok_codes=(0, 1))
        return result.returncode == 1

    def status(self) -> list[FileChange]:
        """Per-path status of the index against HEAD, sorted by path."""
        raw = self._text("diff", "--cached", "--name-status", "--no-renames", "-z")
        parts = [p for p in raw.split("\0") if p]
        changes: list[FileChange] = []
        for code, path in zip(parts[0::2], parts[1::2]):
            status = _STATUS_CODES.get(code[:1])
            if status is not None:
                changes.append(FileChange(path=path, status=status))
        return sorted(changes, key=lambda c: c.path)

    # --- history ---

    def commit(self, message: str) -> Commit:
        if not self.has_staged_changes():
            raise NothingToCommitError("nothing to commit")
        self._git(
            "-c", "commit.gpgsign=false",
            "commit", "--quiet", "--no-verify", "--file=-",
            input=message.encode("utf-8"),
        )
        return self.show("HEAD")

    def rev_parse(self, ref: str) -> str:
        result = self._git(
            "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", ok_codes=(0, 1, 128),
        )
        sha = result.stdout.decode("utf-8").strip()
        if result.returncode != 0 or not sha:
            raise NotFoundError(f"unknown revision: {ref}")
        return sha

    def show(self, ref: str) -> Commit:
        sha = self.rev_parse(ref)
        commits = self._parse_log(self._text("log", "-1", f"--format={_LOG_FORMAT}", sha))
        if not commits:
            raise NotFoundError(f"unknown revision: {ref}")
        return commits[0]

    def log(self, limit: int = 0) -> list[Commit]:
        args = ["log", f"--format={_LOG_FORMAT}"]
        if limit > 0:
            args.append(f"--max-count={limit}")
        return self._parse_log(self._text(*args))

    @staticmethod
    def _parse_log(raw: str) -> list[Commit]:
        commits: list[Commit] = []
        for record in raw.split(_RS):
            record = record.strip("\n")
            if not record:
                continue
            sha, author, when, parents, body = record.split(_FS, 4)
            commits.append(
                Commit(
                    hash=sha,
                    message=body.strip(),
                    author=author,
                    timestamp=datetime.fromisoformat(when),
                    parents=parents.split(),
                )
            )
        return commits

    def show_file(self, rel_path: str, ref: str = "HEAD") -> bytes:
        return self._git("show", f"{ref}:{rel_path}").stdout

    def diff_trees(self, ref: str) -> str:
        """Unified patch from `ref`'s tree to HEAD's tree."""
        sha = self.rev_parse(ref)
        return self._text("diff", "--no-color", "--no-ext-diff", sha, "HEAD")

    def reset_hard(self, ref: str) -> None:
        sha = self.rev_parse(ref)
        self._git("reset", "--quiet", "--hard", sha)

    # --- refs ---

    def head_branch(self) -> str:
        """Short name of the checked-out branch, or "HEAD" when detached."""
        result = self._git("symbolic-ref", "--short", "--quiet", "HEAD", ok_codes=(0, 1))
        return result.stdout.decode("utf-8").strip() or "HEAD"

    def branches(self) -> list[tuple[str, str]]:
        raw = self._text(
            "for-each-ref", f"--format=%(refname:short){_FS}%(objectname)", "refs/heads",
        )
        pairs = []
        for line in raw.splitlines():
            if line:
                name, sha = line.split(_FS, 1)
                pairs.append((name, sha))
        return sorted(pairs)

    def branch_exists(self, name: str) -> bool:
        result = self._git(
            "show-ref", "--verify", "--quiet", f"refs/heads/{name}", ok_codes=(0, 1),
        )
        return result.returncode == 0

    def update_ref(self, ref: str, target: str = "HEAD") -> str:
        """Point `ref` at `target`'s commit and return that hash."""
        sha = self.rev_parse(target)
        self._git("update-ref", ref, sha)
        return sha

    def delete_ref(self, ref: str) -> None:
        self._git("update-ref", "-d", ref)

    def checkout(self, name: str) -> None:
        self._git("checkout", "--quiet", name)


# --- Code repository helpers (used by the post-commit hook) ---


def find_git_dir(start: Path) -> Path | None:
    """Walk up from `start` looking for a `.git` directory."""
    current = Path(start).resolve()
    while True:
        candidate = current / ".git"
        if candidate.is_dir():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def gather_commit_context(cwd: Path) -> CommitContext | None:
    """Describe HEAD of the code repository at `cwd`, or None for non-git."""
    sha = _run_git(["rev-parse", "HEAD"], cwd=cwd)
    if not sha:
        return None
    message = _run_git(["log", "-1", "--format=%s"], cwd=cwd) or ""
    author = _run_git(["log", "-1", "--format=%an"], cwd=cwd) or ""
    # `show` also works for the root commit, unlike HEAD~1..HEAD.
    diff = _run_git(["show", "--format=", "--no-color", "HEAD"], cwd=cwd, strip=False) or ""
    return CommitContext(hash=sha, message=message, author=author, diff=diff)


def _run_git(args: list[str], cwd: Path, strip: bool = True) -> str | None:
    """Run a git command and return stdout, or None on failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            output = result.stdout.strip() if strip else result.stdout
            return output if output.strip() else None
        return None
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return None
