"""Structural diff summary without a model.

Reads a unified diff and reports which files appeared, disappeared, or
touched configuration, plus declarations that were added or removed.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from ..models.types import CommitContext
from .base import CommitStrategy

_ADDED_FILE_RE = re.compile(r"^\+\+\+ b/(.+)$", re.MULTILINE)
_REMOVED_FILE_RE = re.compile(r"^--- a/(.+)$", re.MULTILINE)

# Declaration keywords across common languages (Go, Python, Rust, TS...).
_FUNC_KEYWORDS = r"(?:func|def|fn|function)"
_TYPE_KEYWORDS = r"(?:type|class|struct|interface|enum)"

_FUNC_ADDED_RE = re.compile(rf"^\+.*\b{_FUNC_KEYWORDS}\s+(\w+)", re.MULTILINE)
_TYPE_ADDED_RE = re.compile(rf"^\+.*\b{_TYPE_KEYWORDS}\s+(\w+)", re.MULTILINE)
_FUNC_REMOVED_RE = re.compile(rf"^-.*\b{_FUNC_KEYWORDS}\s+(\w+)", re.MULTILINE)
_TYPE_REMOVED_RE = re.compile(rf"^-.*\b{_TYPE_KEYWORDS}\s+(\w+)", re.MULTILINE)

CONFIG_FILE_RE = re.compile(r"\.(yaml|yml|json|toml)$")


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _declarations(pattern: re.Pattern[str], diff: str) -> list[str]:
    # File header lines (+++/---) are never declarations.
    return _unique(
        m.group(1)
        for m in pattern.finditer(diff)
        if not m.group(0).startswith(("+++", "---"))
    )


def extract_summary(ctx: CommitContext) -> str:
    """One-line structural summary of `ctx.diff`, or "" if nothing stands out."""
    if not ctx.diff:
        return ""

    added = [p for p in _ADDED_FILE_RE.findall(ctx.diff) if p != "/dev/null"]
    removed = [p for p in _REMOVED_FILE_RE.findall(ctx.diff) if p != "/dev/null"]
    added_set, removed_set = set(added), set(removed)

    new_files = _unique([p for p in added if p not in removed_set])
    removed_files = _unique([p for p in removed if p not in added_set])
    config_files = _unique([p for p in added if CONFIG_FILE_RE.search(p)])

    clauses: list[tuple[str, list[str]]] = [
        ("added files", new_files),
        ("removed files", removed_files),
        ("config changes", config_files),
        ("new funcs", _declarations(_FUNC_ADDED_RE, ctx.diff)),
        ("new types", _declarations(_TYPE_ADDED_RE, ctx.diff)),
        ("removed funcs", _declarations(_FUNC_REMOVED_RE, ctx.diff)),
        ("removed types", _declarations(_TYPE_REMOVED_RE, ctx.diff)),
    ]
    parts = [f"{label}: {', '.join(names)}" for label, names in clauses if names]
    if not parts:
        return ""
    return f"[{ctx.short_hash}] {ctx.message} — {'; '.join(parts)}"


class ExtractStrategy(CommitStrategy):
    name = "extract"

    async def run(self, ctx: CommitContext) -> str:
        return extract_summary(ctx)
