"""Tests for the versioned store, history and branches over a real git store."""

from __future__ import annotations

import pytest

from memories import SENTINEL_FILE, STORE_DIR
from memories.branch import BranchController
from memories.errors import (
    CurrentBranchError,
    InvalidKeyError,
    MemError,
    NotFoundError,
    NotInitializedError,
    NothingToCommitError,
    StorageError,
)
from memories.git import GitEngine
from memories.history import HistoryController
from memories.models import ChangeStatus, Scope, ScopeType
from memories.store import VersionedStore


@pytest.fixture
def history(engine) -> HistoryController:
    return HistoryController(engine)


@pytest.fixture
def branches(engine) -> BranchController:
    return BranchController(engine)


class TestInit:
    def test_seeds_sentinel_commit(self, engine, project):
        assert (project / SENTINEL_FILE).read_text() == "mem repository initialized\n"
        commits = engine.log()
        assert len(commits) == 1
        assert commits[0].message == "init: initialize mem repository"
        assert commits[0].author == "mem"
        assert engine.head_branch() == "main"

    def test_open_uninitialized_raises(self, tmp_path):
        scope = Scope(type=ScopeType.PROJECT, root_path=tmp_path, store_path=tmp_path / STORE_DIR)
        with pytest.raises(NotInitializedError):
            GitEngine.open(scope)

    def test_store_dir_is_not_tracked(self, engine, history):
        assert history.status() == []
        assert engine.has_staged_changes() is False


class TestVersionedStore:
    def test_save_and_get(self, store):
        store.save("notes/api", "v1")
        memory = store.get("notes/api")
        assert memory.content == b"v1"
        assert memory.updated_at is not None

    def test_save_stages_without_commit(self, store, engine):
        store.save("a", b"x")
        assert engine.has_staged_changes()
        assert len(engine.log()) == 1

    def test_get_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.get("nope")

    def test_rejects_parent_segments(self, store):
        with pytest.raises(InvalidKeyError):
            store.save("notes/../../escape", "x")

    def test_delete(self, store, history):
        store.save("gone", "x")
        history.commit("add gone")
        store.delete("gone")
        assert not store.exists("gone")
        assert [c.status for c in history.status()] == [ChangeStatus.DELETED]

    def test_delete_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.delete("missing")

    def test_list_skips_sentinel_and_store(self, store):
        store.save("b", "2")
        store.save("a/x", "1")
        keys = [m.key for m in store.list()]
        assert keys == ["a/x", "b"]
        assert SENTINEL_FILE not in keys

    def test_list_skips_nested_stores(self, tmp_path):
        home = tmp_path / "home"
        outer = VersionedStore(GitEngine.init(home, home / STORE_DIR))
        GitEngine.init(home / "proj", home / "proj" / STORE_DIR)
        (home / "proj" / "code").mkdir()
        GitEngine.init(home / "proj" / "code", home / "proj" / "code" / ".git")
        outer.save("note", "n")

        assert [m.key for m in outer.list()] == ["note"]

    def test_save_under_existing_file_raises_storage_error(self, store):
        store.save("a", "x")
        with pytest.raises(StorageError, match="save a/b"):
            store.save("a/b", "y")
        assert store.get("a").text == "x"

    @pytest.mark.parametrize("key", ["dir/", "a//b"])
    def test_rejects_empty_segments_before_writing(self, store, project, key):
        with pytest.raises(InvalidKeyError):
            store.save(key, "x")
        assert not (project / "dir").exists()
        assert not (project / "a").exists()

    def test_list_prefix_is_literal(self, store):
        store.save("notes/a", "1")
        store.save("notesX", "2")
        store.save("other", "3")
        assert [m.key for m in store.list("notes")] == ["notes/a", "notesX"]
        assert [m.key for m in store.list("notes/")] == ["notes/a"]


class TestHistory:
    def test_commit_and_log_newest_first(self, store, history):
        store.save("k", "v1")
        c1 = history.commit("m1")
        store.save("k", "v2")
        c2 = history.commit("m2")

        log = history.log()
        assert [c.message for c in log[:2]] == ["m2", "m1"]
        assert log[0].hash == c2.hash
        assert log[0].parents == [c1.hash]
        assert [c.message for c in history.log(1)] == ["m2"]

    def test_nothing_to_commit(self, history):
        with pytest.raises(NothingToCommitError):
            history.commit("empty")

    def test_show(self, store, history):
        store.save("k", "v")
        commit = history.commit("hello")
        assert history.show(commit.short_hash).hash == commit.hash
        with pytest.raises(NotFoundError):
            history.show("no-such-ref")

    def test_pseudo_diff_clean_is_empty(self, history):
        assert history.diff() == ""

    def test_pseudo_diff_added(self, store, history):
        store.save("new", "one\ntwo")
        assert history.diff() == "--- /dev/null\n+++ b/new\n+one\n+two\n"

    def test_pseudo_diff_modified_shows_whole_old_then_new(self, store, history):
        store.save("k", "a\nb")
        history.commit("base")
        store.save("k", "a\nc")
        assert history.diff() == "--- a/k\n+++ b/k\n-a\n-b\n+a\n+c\n"

    def test_pseudo_diff_deleted(self, store, history):
        store.save("k", "x")
        history.commit("base")
        store.delete("k")
        assert history.diff() == "--- a/k\n+++ /dev/null\n-x\n"

    def test_ref_diff_is_real_patch(self, store, history):
        store.save("k", "v1\n")
        first = history.commit("one")
        store.save("k", "v2\n")
        history.commit("two")
        patch = history.diff(first.hash)
        assert "-v1" in patch
        assert "+v2" in patch
        assert "+++ b/k" in patch

    def test_revert_restores_content(self, store, history):
        store.save("k", "v1")
        first = history.commit("one")
        store.save("k", "v2")
        history.commit("two")

        history.revert(first.hash)
        assert store.get("k").content == b"v1"
        assert history.log()[0].hash == first.hash


class TestBranches:
    def test_create_list_switch(self, store, history, branches):
        store.save("k", "main-value")
        history.commit("on main")

        created = branches.create("feature")
        assert created.name == "feature"
        assert branches.current().name == "main"
        assert [b.name for b in branches.list()] == ["feature", "main"]

        branches.switch("feature")
        store.save("k", "feature-value")
        history.commit("on feature")
        branches.switch("main")
        assert store.get("k").content == b"main-value"

    def test_create_existing_raises(self, branches):
        branches.create("dup")
        with pytest.raises(MemError):
            branches.create("dup")

    def test_switch_unknown_raises(self, branches):
        with pytest.raises(NotFoundError):
            branches.switch("ghost")

    def test_delete_rules(self, branches):
        with pytest.raises(CurrentBranchError):
            branches.delete("main")
        with pytest.raises(NotFoundError):
            branches.delete("ghost")
        branches.create("tmp")
        branches.delete("tmp")
        assert [b.name for b in branches.list()] == ["main"]
