"""`.memignore` matching for memory keys.

A subset of gitignore syntax: blank lines and `#` comments are skipped,
`!pattern` re-includes, a trailing `/` matches a directory and everything
below it, a pattern containing `/` is anchored to the scope root, and a
bare pattern matches any path segment. The last matching rule wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path

IGNORE_FILENAME = ".memignore"


@dataclass(frozen=True)
class _Rule:
    pattern: str
    negate: bool
    dir_only: bool
    anchored: bool

    def matches(self, key: str) -> bool:
        segments = key.split("/")
        if self.anchored:
            depth = self.pattern.count("/") + 1
            if len(segments) < depth or (self.dir_only and len(segments) == depth):
                return False
            # A matched directory prefix covers every key below it.
            return fnmatchcase("/".join(segments[:depth]), self.pattern)
        candidates = segments[:-1] if self.dir_only else segments
        return any(fnmatchcase(seg, self.pattern) for seg in candidates)


class IgnoreMatcher:
    """Decides whether a key is blocked by the scope's ignore file."""

    def __init__(self, rules: list[_Rule] | None = None) -> None:
        self._rules = rules or []

    @classmethod
    def load(cls, path: Path) -> IgnoreMatcher:
        if not path.is_file():
            return cls()
        return cls.parse(path.read_text(encoding="utf-8"))

    @classmethod
    def parse(cls, text: str) -> IgnoreMatcher:
        rules: list[_Rule] = []
        for raw in text.splitlines():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            negate = line.startswith("!")
            if negate:
                line = line[1:]
            dir_only = line.endswith("/")
            line = line.rstrip("/")
            anchored = "/" in line
            line = line.lstrip("/")
            if line:
                rules.append(_Rule(line, negate, dir_only, anchored))
        return cls(rules)

    def __bool__(self) -> bool:
        return bool(self._rules)

    def match_key(self, key: str) -> bool:
        ignored = False
        for rule in self._rules:
            if rule.matches(key):
                ignored = not rule.negate
        return ignored
