"""Shared fixtures: isolated home/project directories and real git stores."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from memories import STORE_DIR
from memories.git import GitEngine
from memories.scope import MemPaths, ScopeResolver
from memories.store import VersionedStore

_LEAKY_ENV = (
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "ANTHROPIC_API_KEY",
    "MEM_EMBED_BACKEND",
    "MEM_EMBED_MODEL",
    "MEM_DEFAULT_PROVIDER",
    "MEM_GIT_TIMEOUT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep host API keys and MEM_ overrides out of every test."""
    for var in _LEAKY_ENV:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def home(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    monkeypatch.setenv("MEM_HOME", str(path))
    return path


@pytest.fixture
def project(tmp_path) -> Path:
    path = tmp_path / "proj"
    path.mkdir()
    return path


@pytest.fixture
def resolver(home, project) -> ScopeResolver:
    return ScopeResolver(MemPaths(home=home, cwd=project))


@pytest.fixture
def engine(project) -> GitEngine:
    return GitEngine.init(project, project / STORE_DIR)


@pytest.fixture
def store(engine) -> VersionedStore:
    return VersionedStore(engine)


def git(cwd: Path, *args: str) -> str:
    """Run git in a plain code repository with a fixed identity."""
    result = subprocess.run(
        ["git", "-c", "user.name=Tester", "-c", "user.email=t@example.com", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def code_repo(project) -> Path:
    """`project` as a git code repository with one commit."""
    git(project, "init", "--quiet", "-b", "main")
    (project / "README.md").write_text("hello\n", encoding="utf-8")
    git(project, "add", "README.md")
    git(project, "commit", "--quiet", "-m", "initial")
    return project


@pytest.fixture
def run_git():
    return git
