"""Tests for domain models and key validation."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from memories.errors import InvalidKeyError, MemError
from memories.models import (
    Commit,
    CommitContext,
    HookStrategy,
    Memory,
    Scope,
    ScopeType,
    validate_key,
)


class TestValidateKey:
    @pytest.mark.parametrize("key", ["notes", "a/b/c", "v1.2_final-draft", "9lives"])
    def test_accepts_valid_keys(self, key):
        assert validate_key(key) == key

    @pytest.mark.parametrize("key", ["", "/abs", ".hidden", "-dash", "has space", "semi;colon"])
    def test_rejects_invalid_keys(self, key):
        with pytest.raises(InvalidKeyError):
            validate_key(key)

    def test_invalid_key_is_value_error_and_mem_error(self):
        with pytest.raises(ValueError):
            validate_key("")
        with pytest.raises(MemError):
            validate_key("")


class TestMemory:
    def test_text_decodes_content(self):
        m = Memory(key="notes/a", content="héllo".encode())
        assert m.text == "héllo"

    def test_invalid_key_rejected(self):
        with pytest.raises((ValidationError, InvalidKeyError)):
            Memory(key="../etc", content=b"")


class TestScope:
    def test_derived_paths(self, tmp_path):
        scope = Scope(type=ScopeType.PROJECT, root_path=tmp_path, store_path=tmp_path / ".mem")
        assert scope.vector_path == tmp_path / ".mem" / "vectors"
        assert scope.config_path == tmp_path / ".mem" / "config.yaml"
        assert scope.ignore_path == tmp_path / ".memignore"

    def test_frozen(self):
        scope = Scope(type=ScopeType.GLOBAL, root_path=Path("/h"), store_path=Path("/h/.mem"))
        with pytest.raises(ValidationError):
            scope.type = ScopeType.PROJECT


def test_short_hashes():
    sha = "0123456789abcdef0123456789abcdef01234567"
    c = Commit(hash=sha, message="m", author="mem", timestamp=datetime.now(UTC))
    assert c.short_hash == "0123456"
    assert CommitContext(hash=sha).short_hash == "0123456"


def test_hook_strategy_values():
    assert [s.value for s in HookStrategy] == ["extract", "summarize", "script", "all"]
