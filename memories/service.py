"""Use-case orchestration.

`MemoryService` is the one object the CLI talks to. Each method resolves
the scope it acts on, opens that scope's store, and wires in whatever
optional collaborators (index, embedder, provider) the operation needs.
Reads of a single key cascade project -> global unless a scope is named;
everything else acts on exactly one resolved scope.
"""

from __future__ import annotations

import logging
from typing import TextIO

from .branch import BranchController
from .collaborators import Available, Collaborators
from .config import MemConfig, ProviderConfig, get_default_config_content
from .errors import (
    AlreadyInitializedError,
    IgnoredKeyError,
    MemError,
    NoProviderError,
    NotFoundError,
    NotInitializedError,
)
from .git import DEFAULT_TIMEOUT, GitEngine
from .history import HistoryController
from .hooks.pipeline import HookPipeline
from .ignore import IgnoreMatcher
from .llm import build_provider
from .models.types import (
    AutoTag,
    Branch,
    Commit,
    CommitContext,
    FileChange,
    Memory,
    Scope,
    SearchResult,
    Summary,
    validate_key,
)
from .reindex import ReindexQueue
from .scope import ScopeResolver
from .store import VersionedStore
from .vector import FlatVectorIndex

logger = logging.getLogger(__name__)

SUMMARIZE_PROMPT_HEADER = "Summarize the following memories:\n\n"
AUTO_TAG_PROMPT = "Generate tags for this content:\n\n{content}"
PROVIDER_TEST_PROMPT = "Say hello"


class MemoryService:
    def __init__(
        self,
        resolver: ScopeResolver,
        reindex: ReindexQueue | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.resolver = resolver
        self._reindex = reindex
        self._stderr = stderr
        self._collaborators: dict[str, Collaborators] = {}

    # --- plumbing ---

    def scope(self, hint: str = "") -> Scope:
        return self.resolver.resolve(hint)

    def config(self, scope: Scope) -> MemConfig:
        return MemConfig.load(scope.config_path)

    def _engine(self, scope: Scope) -> GitEngine:
        timeout = self.config(scope).git_timeout if scope.config_path.exists() else DEFAULT_TIMEOUT
        return GitEngine.open(scope, timeout=timeout)

    def _store(self, scope: Scope) -> VersionedStore:
        return VersionedStore(self._engine(scope))

    def _history(self, scope: Scope) -> HistoryController:
        return HistoryController(self._engine(scope))

    def _branches(self, scope: Scope) -> BranchController:
        return BranchController(self._engine(scope))

    def collaborators(self, scope: Scope) -> Collaborators:
        """Index/embedder/provider for `scope`, resolved once per service."""
        cache_key = str(scope.store_path)
        if cache_key not in self._collaborators:
            self._collaborators[cache_key] = Collaborators.resolve(scope, self.config(scope))
        return self._collaborators[cache_key]

    def _check_writable(self, scope: Scope, key: str) -> None:
        if IgnoreMatcher.load(scope.ignore_path).match_key(key):
            raise IgnoredKeyError(f"key {key!r} is blocked by .memignore")

    # --- lifecycle ---

    def init_store(self, global_: bool = False) -> Scope:
        """Create a store in the working directory (or the home directory)."""
        if global_:
            scope = self.resolver.global_scope()
        else:
            scope = self.resolver.project_at(self.resolver.paths.cwd)
        if scope.store_path.exists():
            raise AlreadyInitializedError(f"already initialized: {scope.store_path}")

        GitEngine.init(scope.root_path, scope.store_path)
        scope.vector_path.mkdir(parents=True, exist_ok=True)
        scope.config_path.write_text(get_default_config_content(), encoding="utf-8")
        return scope

    # --- memories ---

    async def set(self, key: str, content: str, scope: str = "") -> None:
        """Write and stage `key`. Does not commit."""
        validate_key(key)
        target = self.scope(scope)
        self._check_writable(target, key)
        self._store(target).save(key, content)
        await self.collaborators(target).index_memory(key, content)

    def get(self, key: str, scope: str = "") -> Memory:
        validate_key(key)
        scopes = [self.scope(scope)] if scope else self.resolver.cascade()
        for candidate in scopes:
            try:
                return self._store(candidate).get(key)
            except (NotFoundError, NotInitializedError):
                continue
        raise NotFoundError(f"memory not found: {key}")

    def delete(self, key: str, scope: str = "") -> None:
        validate_key(key)
        target = self.scope(scope)
        self._store(target).delete(key)
        self.collaborators(target).forget(key)

    def list(self, prefix: str = "", scope: str = "") -> list[Memory]:
        return self._store(self.scope(scope)).list(prefix)

    async def add(self, key: str, content: str, message: str = "", scope: str = "") -> Commit:
        """Append `content` on a new line (or create the key) and commit."""
        validate_key(key)
        target = self.scope(scope)
        self._check_writable(target, key)
        store = self._store(target)
        try:
            new_content = store.get(key).text + "\n" + content
        except NotFoundError:
            new_content = content
        store.save(key, new_content)
        commit = HistoryController(store.engine).commit(message or f"add: append to {key}")
        await self.collaborators(target).index_memory(key, new_content)
        return commit

    async def edit(self, key: str, content: str, message: str = "", scope: str = "") -> Commit:
        """Replace `key`'s content and commit."""
        validate_key(key)
        target = self.scope(scope)
        self._check_writable(target, key)
        store = self._store(target)
        store.save(key, content)
        commit = HistoryController(store.engine).commit(message or f"edit: update {key}")
        await self.collaborators(target).index_memory(key, content)
        return commit

    # --- history ---

    def commit(self, message: str, scope: str = "") -> Commit:
        return self._history(self.scope(scope)).commit(message)

    def log(self, limit: int = 0, scope: str = "") -> list[Commit]:
        return self._history(self.scope(scope)).log(limit)

    def diff(self, ref: str = "", scope: str = "") -> str:
        return self._history(self.scope(scope)).diff(ref)

    def revert(self, ref: str, scope: str = "") -> None:
        self._history(self.scope(scope)).revert(ref)

    def show(self, ref: str, scope: str = "") -> Commit:
        return self._history(self.scope(scope)).show(ref)

    def status(self, scope: str = "") -> tuple[str, list[FileChange]]:
        """Current branch and the paths changed since HEAD."""
        engine = self._engine(self.scope(scope))
        return engine.head_branch(), HistoryController(engine).status()

    # --- search ---

    def keyword_search(self, query: str, limit: int = 0, scope: str = "") -> list[SearchResult]:
        """Case-insensitive substring match on key or content."""
        needle = query.lower()
        results: list[SearchResult] = []
        for memory in self.list(scope=scope):
            if needle in memory.key.lower() or needle in memory.text.lower():
                results.append(SearchResult(key=memory.key, score=1.0))
                if limit > 0 and len(results) >= limit:
                    break
        return results

    async def semantic_search(
        self, query: str, limit: int = 10, scope: str = "",
    ) -> list[SearchResult]:
        index, embedder = self.collaborators(self.scope(scope)).require_search()
        vector = await embedder.embed(query)
        return index.search(vector, limit)

    async def rebuild_index(self, scope: str = "") -> int:
        """Re-embed every memory into a fresh index. Returns the entry count."""
        target = self.scope(scope)
        collab = self.collaborators(target)
        embedder = collab.require_embedder()

        items: list[tuple[str, list[float]]] = []
        for memory in self._store(target).list():
            try:
                items.append((memory.key, await embedder.embed(memory.text)))
            except Exception as e:
                logger.warning("Skipping %s during reindex: %s", memory.key, e)

        index = FlatVectorIndex(target.vector_path, embedder.dim)
        index.build(items)
        index.save()
        collab.index = Available(index)
        return len(items)

    def index_status(self, scope: str = "") -> tuple[int, int]:
        """Entry count and dimension of the on-disk index (no embedder needed)."""
        target = self.scope(scope)
        index = FlatVectorIndex(target.vector_path, 0)
        index.load()
        return len(index), index.dim

    # --- provider-backed ---

    async def summarize(self, prefix: str = "", scope: str = "") -> Summary:
        target = self.scope(scope)
        provider = self.collaborators(target).require_provider()
        memories = self._store(target).list(prefix)
        if not memories:
            return Summary(title="Empty", overview="No memories found")

        prompt = SUMMARIZE_PROMPT_HEADER + "".join(
            f"## {m.key}\n{m.text}\n\n" for m in memories
        )
        return await provider.generate_object(prompt, Summary)

    async def auto_tag(self, key: str, scope: str = "") -> AutoTag:
        validate_key(key)
        target = self.scope(scope)
        provider = self.collaborators(target).require_provider()
        memory = self._store(target).get(key)
        return await provider.generate_object(AUTO_TAG_PROMPT.format(content=memory.text), AutoTag)

    # --- branches ---

    def branch_current(self, scope: str = "") -> Branch:
        return self._branches(self.scope(scope)).current()

    def branch_list(self, scope: str = "") -> list[Branch]:
        return self._branches(self.scope(scope)).list()

    def branch_create(self, name: str, scope: str = "") -> Branch:
        return self._branches(self.scope(scope)).create(name)

    def branch_switch(self, name: str, scope: str = "") -> None:
        self._branches(self.scope(scope)).switch(name)

    def branch_delete(self, name: str, scope: str = "") -> None:
        self._branches(self.scope(scope)).delete(name)

    # --- provider registry ---

    def _save_config(self, scope: Scope, config: MemConfig) -> None:
        config.save(scope.config_path)
        self._collaborators.pop(str(scope.store_path), None)

    def provider_list(self, scope: str = "") -> tuple[list[str], str]:
        """Registered provider names and the default one."""
        config = self.config(self.scope(scope))
        return sorted(config.providers), config.default_provider

    def provider_add(
        self,
        name: str,
        api_key: str = "",
        base_url: str = "",
        model: str = "",
        scope: str = "",
    ) -> None:
        target = self.scope(scope)
        config = self.config(target)
        config.providers[name] = ProviderConfig(api_key=api_key, base_url=base_url, model=model)
        self._save_config(target, config)

    def provider_remove(self, name: str, scope: str = "") -> None:
        target = self.scope(scope)
        config = self.config(target)
        if config.providers.pop(name, None) is None:
            raise NotFoundError(f"provider {name!r} not found")
        if config.default_provider == name:
            config.default_provider = ""
        self._save_config(target, config)

    def provider_set_default(self, name: str, scope: str = "") -> None:
        target = self.scope(scope)
        config = self.config(target)
        if name not in config.providers:
            raise NotFoundError(f"provider {name!r} not found")
        config.default_provider = name
        self._save_config(target, config)

    async def provider_test(self, name: str, scope: str = "") -> str:
        """Send a trivial prompt through `name` and return the reply."""
        config = self.config(self.scope(scope))
        settings = config.providers.get(name)
        if settings is None:
            raise NotFoundError(f"provider {name!r} not found")
        provider = build_provider(name, settings, config.get_api_key(name))
        if provider is None:
            raise NoProviderError(f"provider {name!r} has no API key")
        try:
            return await provider.complete(PROVIDER_TEST_PROMPT)
        except Exception as e:
            raise MemError(f"provider {name!r} failed: {e}") from e

    # --- hooks ---

    def _pipeline(self, target: Scope, store_scope: str = "") -> HookPipeline:
        async def store_fn(key: str, content: str) -> None:
            await self.set(key, content, scope=store_scope)

        return HookPipeline(
            target,
            store_fn=store_fn,
            provider=self.collaborators(target).provider_or_none(),
            reindex=self._reindex,
            config=self.config(target),
            stderr=self._stderr,
        )

    def install_hook(
        self,
        strategy: str = "extract",
        script: str = "",
        force: bool = False,
        scope: str = "",
    ) -> str:
        target = self.scope(scope)
        if not target.store_path.is_dir():
            raise NotInitializedError(f"repository not initialized: {target.store_path}")
        path = HookPipeline(target).install(strategy, script, force, scope_hint=scope)
        return str(path)

    def uninstall_hook(self, keep_config: bool = False, scope: str = "") -> None:
        HookPipeline(self.scope(scope)).uninstall(keep_config)

    async def run_hook(self, hook_type: str, ctx: CommitContext, scope: str = "") -> list[str]:
        target = self.scope(scope)
        hint = self.config(target).hooks.post_commit.scope or scope
        return await self._pipeline(target, store_scope=hint).run_hook(hook_type, ctx)
