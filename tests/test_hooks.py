"""Tests for the post-commit hook strategies and pipeline."""

from __future__ import annotations

import io
import logging
import stat
from unittest.mock import AsyncMock, MagicMock

import pytest

from memories import STORE_DIR
from memories.config import MemConfig
from memories.errors import HookConflictError, HookScriptError, MemError, NoProviderError
from memories.hooks import (
    HOOK_MARKER,
    HookPipeline,
    ScriptStrategy,
    SummarizeStrategy,
    extract_summary,
    hook_script,
)
from memories.models import CommitContext, Scope, ScopeType

SHA = "abcdef0123456789abcdef0123456789abcdef01"

DIFF = """\
diff --git a/new.go b/new.go
new file mode 100644
--- /dev/null
+++ b/new.go
@@ -0,0 +1,5 @@
+package main
+type Server struct {}
+func Serve() {}
+func Serve() {}
+func helper() {}
diff --git a/old.py b/old.py
deleted file mode 100644
--- a/old.py
+++ /dev/null
@@ -1,2 +0,0 @@
-class Legacy:
-    def run(self):
diff --git a/config.yaml b/config.yaml
--- a/config.yaml
+++ b/config.yaml
@@ -1 +1 @@
-a: 1
+a: 2
"""


def _ctx(diff: str = DIFF, message: str = "wire server") -> CommitContext:
    return CommitContext(hash=SHA, message=message, author="Tester", diff=diff)


# --- extract ---


class TestExtract:
    def test_full_summary(self):
        assert extract_summary(_ctx()) == (
            "[abcdef0] wire server — "
            "added files: new.go; "
            "removed files: old.py; "
            "config changes: config.yaml; "
            "new funcs: Serve, helper; "
            "new types: Server; "
            "removed funcs: run; "
            "removed types: Legacy"
        )

    def test_empty_diff(self):
        assert extract_summary(_ctx(diff="")) == ""

    def test_no_signal_returns_empty(self):
        diff = "--- a/notes.txt\n+++ b/notes.txt\n@@ -1 +1 @@\n-old words\n+new words\n"
        assert extract_summary(_ctx(diff=diff)) == ""

    def test_modified_config_only(self):
        diff = "--- a/app.toml\n+++ b/app.toml\n-x = 1\n+x = 2\n"
        assert extract_summary(_ctx(diff=diff, message="bump")) == (
            "[abcdef0] bump — config changes: app.toml"
        )


class TestSummarizeStrategy:
    async def test_without_provider_raises(self):
        with pytest.raises(NoProviderError):
            await SummarizeStrategy(None).run(_ctx())

    async def test_prompt_contains_commit(self):
        provider = MagicMock()
        provider.complete = AsyncMock(return_value="  Adds a server.  ")
        result = await SummarizeStrategy(provider).run(_ctx())
        assert result == "Adds a server."
        prompt = provider.complete.call_args.args[0]
        assert prompt.startswith("Summarize the following git commit in 1-3 sentences.")
        assert f"Commit: {SHA}" in prompt
        assert "Message: wire server" in prompt
        assert prompt.endswith(DIFF)


class TestScriptStrategy:
    def _script(self, tmp_path, body: str):
        path = tmp_path / "hook.sh"
        path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IEXEC)
        return path

    async def test_receives_diff_and_env(self, tmp_path):
        out = tmp_path / "out.txt"
        script = self._script(
            tmp_path,
            f'cat > "{out}"\necho "$MEM_COMMIT_HASH|$MEM_COMMIT_MSG|$MEM_COMMIT_AUTHOR" >> "{out}"',
        )
        result = await ScriptStrategy(str(script)).run(_ctx(diff="the diff\n"))
        assert result is None
        assert out.read_text() == f"the diff\n{SHA}|wire server|Tester\n"

    async def test_nonzero_exit_raises(self, tmp_path):
        script = self._script(tmp_path, "exit 3")
        with pytest.raises(HookScriptError, match="exit status 3"):
            await ScriptStrategy(str(script)).run(_ctx())

    async def test_missing_script_raises(self, tmp_path):
        with pytest.raises(HookScriptError):
            await ScriptStrategy(str(tmp_path / "absent.sh")).run(_ctx())
        with pytest.raises(HookScriptError):
            await ScriptStrategy("").run(_ctx())


# --- pipeline: install / uninstall ---


@pytest.fixture
def scope(project) -> Scope:
    (project / STORE_DIR).mkdir(exist_ok=True)
    return Scope(type=ScopeType.PROJECT, root_path=project, store_path=project / STORE_DIR)


@pytest.fixture
def hook_path(code_repo):
    return code_repo / ".git" / "hooks" / "post-commit"


class TestInstall:
    def test_writes_shim_and_enables_config(self, scope, hook_path):
        path = HookPipeline(scope).install("all", script="/bin/true")
        assert path.resolve() == hook_path.resolve()
        assert hook_path.read_text() == hook_script()
        assert HOOK_MARKER in hook_path.read_text()
        assert hook_path.stat().st_mode & stat.S_IXUSR

        hc = MemConfig.load(scope.config_path).hooks.post_commit
        assert hc.enabled is True
        assert hc.strategy == "all"
        assert hc.script == "/bin/true"
        assert hc.key_prefix == "hooks/commits"

    def test_unmanaged_hook_conflicts(self, scope, hook_path):
        hook_path.parent.mkdir(parents=True, exist_ok=True)
        hook_path.write_text("#!/bin/sh\necho mine\n")
        with pytest.raises(HookConflictError):
            HookPipeline(scope).install()
        assert hook_path.read_text() == "#!/bin/sh\necho mine\n"

    def test_force_backs_up_and_uninstall_restores(self, scope, hook_path):
        hook_path.parent.mkdir(parents=True, exist_ok=True)
        hook_path.write_text("#!/bin/sh\necho mine\n")
        backup = hook_path.with_name("post-commit.bak")

        HookPipeline(scope).install(force=True)
        assert backup.read_text() == "#!/bin/sh\necho mine\n"
        assert is_managed(hook_path)

        HookPipeline(scope).uninstall()
        assert hook_path.read_text() == "#!/bin/sh\necho mine\n"
        assert not backup.exists()
        assert MemConfig.load(scope.config_path).hooks.post_commit.enabled is False

    def test_reinstall_over_managed_hook_is_fine(self, scope, hook_path):
        HookPipeline(scope).install()
        HookPipeline(scope).install(strategy="summarize")
        assert not hook_path.with_name("post-commit.bak").exists()
        assert MemConfig.load(scope.config_path).hooks.post_commit.strategy == "summarize"

    def test_invalid_strategy(self, scope, code_repo):
        with pytest.raises(MemError):
            HookPipeline(scope).install("guess")
        with pytest.raises(MemError):
            HookPipeline(scope).install("script")

    def test_not_a_git_repo(self, scope):
        with pytest.raises(MemError):
            HookPipeline(scope).install()


class TestUninstall:
    def test_removes_managed_hook_keeping_config(self, scope, hook_path):
        HookPipeline(scope).install()
        HookPipeline(scope).uninstall(keep_config=True)
        assert not hook_path.exists()
        assert MemConfig.load(scope.config_path).hooks.post_commit.enabled is True

    def test_unmanaged_hook_conflicts(self, scope, hook_path):
        hook_path.parent.mkdir(parents=True, exist_ok=True)
        hook_path.write_text("#!/bin/sh\n")
        with pytest.raises(HookConflictError):
            HookPipeline(scope).uninstall()

    def test_missing_hook_is_fine(self, scope, code_repo):
        HookPipeline(scope).uninstall()


def is_managed(path) -> bool:
    return HOOK_MARKER in path.read_text()


# --- pipeline: run ---


def _enabled(strategy: str, **kwargs) -> MemConfig:
    config = MemConfig()
    config.hooks.post_commit.enabled = True
    config.hooks.post_commit.strategy = strategy
    for name, value in kwargs.items():
        setattr(config.hooks.post_commit, name, value)
    return config


class TestRunHook:
    async def test_extract_stores_under_prefix_and_requests_reindex(self, scope):
        store = AsyncMock()
        reindex = MagicMock()
        pipeline = HookPipeline(scope, store_fn=store, reindex=reindex, config=_enabled("extract"))

        written = await pipeline.run_hook("post-commit", _ctx())

        assert written == ["hooks/commits/abcdef0"]
        key, content = store.call_args.args
        assert key == "hooks/commits/abcdef0"
        assert content.startswith("[abcdef0] wire server — added files: new.go")
        reindex.request.assert_called_once()

    async def test_disabled_or_empty_diff_is_noop(self, scope):
        store = AsyncMock()
        reindex = MagicMock()
        disabled = HookPipeline(scope, store_fn=store, reindex=reindex, config=MemConfig())
        assert await disabled.run_hook("post-commit", _ctx()) == []

        enabled = HookPipeline(scope, store_fn=store, reindex=reindex, config=_enabled("extract"))
        assert await enabled.run_hook("post-commit", _ctx(diff="")) == []
        assert await enabled.run_hook("pre-commit", _ctx()) == []
        store.assert_not_called()
        reindex.request.assert_not_called()

    async def test_all_runs_extract_then_summary(self, scope):
        store = AsyncMock()
        provider = MagicMock()
        provider.complete = AsyncMock(return_value="A summary.")
        pipeline = HookPipeline(
            scope, store_fn=store, provider=provider, config=_enabled("all", key_prefix="log"),
        )

        written = await pipeline.run_hook("post-commit", _ctx())

        assert written == ["log/abcdef0", "log/abcdef0/summary"]
        assert store.call_args_list[1].args == ("log/abcdef0/summary", "A summary.")

    async def test_failures_become_warnings(self, scope):
        store = AsyncMock()
        err = io.StringIO()
        pipeline = HookPipeline(scope, store_fn=store, config=_enabled("all"), stderr=err)

        written = await pipeline.run_hook("post-commit", _ctx())

        # Summarize has no provider; extract still lands.
        assert written == ["hooks/commits/abcdef0"]
        assert "mem hook: summarize: no provider configured" in err.getvalue()

    async def test_quiet_suppresses_stderr(self, scope):
        err = io.StringIO()
        pipeline = HookPipeline(
            scope, store_fn=AsyncMock(), config=_enabled("summarize", quiet=True), stderr=err,
        )
        assert await pipeline.run_hook("post-commit", _ctx()) == []
        assert err.getvalue() == ""

    async def test_quiet_failures_still_logged_as_warnings(self, scope, caplog):
        pipeline = HookPipeline(
            scope, store_fn=AsyncMock(), config=_enabled("summarize", quiet=True),
            stderr=io.StringIO(),
        )
        with caplog.at_level(logging.WARNING, logger="memories.hooks.pipeline"):
            await pipeline.run_hook("post-commit", _ctx())

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any("summarize: no provider configured" in r.getMessage() for r in warnings)

    async def test_store_error_is_warning(self, scope):
        store = AsyncMock(side_effect=MemError("blocked"))
        err = io.StringIO()
        pipeline = HookPipeline(scope, store_fn=store, config=_enabled("extract"), stderr=err)
        assert await pipeline.run_hook("post-commit", _ctx()) == []
        assert "mem hook: extract store: blocked" in err.getvalue()
