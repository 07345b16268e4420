"""memories CLI — main entry point (`mem`)."""

from __future__ import annotations

import asyncio
import json as json_mod
import logging
import os
import shutil
import subprocess
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .errors import MemError, NotFoundError

EXTERNAL_PREFIX = "mem-"
SCOPE_HELP = "Target scope: project or global (default: nearest project, else global)"


class MemApp(typer.Typer):
    """Typer app that falls back to `mem-<name>` executables on PATH."""

    def _builtin_names(self) -> set[str]:
        names = {c.name for c in self.registered_commands if c.name}
        names |= {g.name for g in self.registered_groups if g.name}
        return names

    def __call__(self, *args, **kwargs):
        argv = sys.argv[1:]
        if argv and not argv[0].startswith("-") and argv[0] not in self._builtin_names():
            external = shutil.which(EXTERNAL_PREFIX + argv[0])
            if external:
                sys.exit(_run_external(external, argv[1:]))
        return super().__call__(*args, **kwargs)


app = MemApp(
    name="mem",
    help="Versioned key-value memory store backed by git",
    add_completion=False,
    invoke_without_command=True,
)
console = Console()
err_console = Console(stderr=True)

# --- Sub-command groups ---

branch_app = typer.Typer(help="Manage memory branches")
app.add_typer(branch_app, name="branch")

provider_app = typer.Typer(help="Manage text-completion providers")
app.add_typer(provider_app, name="provider")

index_app = typer.Typer(help="Manage the semantic search index")
app.add_typer(index_app, name="index")

config_app = typer.Typer(help="View configuration")
app.add_typer(config_app, name="config")

hook_app = typer.Typer(help="Git hook entry points (internal)")
app.add_typer(hook_app, name="hook", hidden=True)


# --- Helpers ---


def _run_async(coro):
    """Run an async function from sync CLI context."""
    return asyncio.run(coro)


def _service(reindex=None):
    from .scope import MemPaths, ScopeResolver
    from .service import MemoryService

    return MemoryService(ScopeResolver(MemPaths.from_environment()), reindex=reindex)


@contextmanager
def _errors() -> Iterator[None]:
    """Turn domain errors into a red message and exit code 1."""
    try:
        yield
    except MemError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from None


def _read_content(value: str | None) -> str:
    if value is not None:
        return value
    return sys.stdin.read()


def _commit_after(service, action: str, key: str, message: str, scope: str) -> None:
    service.commit(message or f"{action}: {key}", scope=scope)


def _run_external(path: str, args: list[str]) -> int:
    """Run a `mem-<name>` plugin with the resolved scope in its environment."""
    env = dict(os.environ)
    try:
        service = _service()
        scope = service.scope()
        try:
            branch = service.branch_current().name
        except MemError:
            branch = ""
        env.update(service.resolver.env_vars(scope, branch, __version__))
    except MemError as e:
        logging.getLogger(__name__).debug("No scope for external command: %s", e)
    return subprocess.run([path, *args], env=env).returncode


def _external_commands() -> list[str]:
    """Names of `mem-<name>` executables on PATH, first match wins."""
    names: list[str] = []
    for directory in os.environ.get("PATH", "").split(os.pathsep):
        try:
            entries = sorted(Path(directory).iterdir())
        except OSError:
            continue
        for entry in entries:
            name = entry.name
            if not name.startswith(EXTERNAL_PREFIX) or entry.is_dir():
                continue
            if os.access(entry, os.X_OK) and name[len(EXTERNAL_PREFIX):] not in names:
                names.append(name[len(EXTERNAL_PREFIX):])
    return names


# --- Top-level commands ---


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Verbose logging to stderr"),
) -> None:
    """mem — versioned memory for humans and agents."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print(f"[bold]memories[/bold] v{__version__}")
        console.print("Run [cyan]mem --help[/cyan] for available commands.")
        plugins = _external_commands()
        if plugins:
            console.print(f"[dim]External commands: {', '.join(plugins)}[/dim]")


@app.command("init")
def init(
    global_: bool = typer.Option(False, "--global", help="Initialize the global scope (~/.mem)"),
) -> None:
    """Create a memory store in the current directory."""
    with _errors():
        scope = _service().init_store(global_=global_)
    console.print(f"[green]Initialized {scope.type} memory store:[/green] {scope.store_path}")


@app.command("set")
def set_(
    key: str = typer.Argument(..., help="Memory key, e.g. notes/api"),
    value: str | None = typer.Argument(None, help="Content (read from stdin if omitted)"),
    message: str = typer.Option("", "--message", "-m", help="Commit message"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Set a memory and commit it."""
    content = _read_content(value)
    service = _service()
    with _errors():
        _run_async(service.set(key, content, scope=scope))
        _commit_after(service, "set", key, message, scope)
    typer.echo(f"Set {key}")


@app.command("get")
def get(
    key: str = typer.Argument(..., help="Memory key"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Print a memory (project scope shadows global)."""
    with _errors():
        memory = _service().get(key, scope=scope)
    if json_output:
        print(json_mod.dumps(
            {
                "key": memory.key,
                "content": memory.text,
                "created_at": memory.created_at,
                "updated_at": memory.updated_at,
            },
            default=str,
        ))
        return
    typer.echo(memory.text, nl=not memory.text.endswith("\n"))


@app.command("del")
def delete(
    key: str = typer.Argument(..., help="Memory key"),
    message: str = typer.Option("", "--message", "-m", help="Commit message"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Delete a memory and commit the removal."""
    service = _service()
    with _errors():
        service.delete(key, scope=scope)
        _commit_after(service, "del", key, message, scope)
    typer.echo(f"Deleted {key}")


@app.command("list")
def list_(
    prefix: str = typer.Argument("", help="Only keys starting with this string"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List memory keys."""
    with _errors():
        memories = _service().list(prefix, scope=scope)
    if json_output:
        print(json_mod.dumps([{"key": m.key, "content": m.text} for m in memories]))
        return
    for memory in memories:
        typer.echo(memory.key)


@app.command("add")
def add(
    key: str = typer.Argument(..., help="Memory key"),
    content: str | None = typer.Argument(None, help="Text to append (read from stdin if omitted)"),
    message: str = typer.Option("", "--message", "-m", help="Commit message"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Append a line to a memory and commit."""
    text = _read_content(content)
    with _errors():
        commit = _run_async(_service().add(key, text, message=message, scope=scope))
    typer.echo(f"[{commit.short_hash}] {commit.message}")


@app.command("edit")
def edit(
    key: str = typer.Argument(..., help="Memory key"),
    content: str | None = typer.Option(None, "--content", "-c", help="New content (skips $EDITOR)"),
    message: str = typer.Option("", "--message", "-m", help="Commit message"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Edit a memory in $EDITOR (created if missing) and commit."""
    service = _service()
    with _errors():
        try:
            existing: str | None = service.get(key, scope=scope).text
        except NotFoundError:
            existing = None

        if content is None:
            content = typer.edit(existing or "", extension=".txt")
            if content is None or content == existing:
                typer.echo("No changes.")
                return

        commit = _run_async(service.edit(key, content, message=message, scope=scope))
    verb = "Updated" if existing is not None else "Created"
    typer.echo(f"{verb} {key} [{commit.short_hash}]")


@app.command("commit")
def commit(
    message: str = typer.Option(..., "--message", "-m", help="Commit message"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Commit staged memory changes."""
    with _errors():
        result = _service().commit(message, scope=scope)
    typer.echo(f"[{result.short_hash}] {result.message}")


@app.command("log")
def log(
    number: int = typer.Option(10, "--number", "-n", help="Limit number of commits (0 = all)"),
    oneline: bool = typer.Option(False, "--oneline", help="Show each commit on one line"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show commit history, newest first."""
    with _errors():
        commits = _service().log(number, scope=scope)
    if json_output:
        print(json_mod.dumps([c.model_dump(mode="json") for c in commits]))
        return
    for c in commits:
        if oneline:
            typer.echo(f"{c.short_hash} {c.message.splitlines()[0] if c.message else ''}")
            continue
        typer.echo(f"commit {c.hash}")
        typer.echo(f"Author: {c.author}")
        typer.echo(f"Date:   {c.timestamp.isoformat()}")
        typer.echo("")
        for line in c.message.splitlines():
            typer.echo(f"    {line}")
        typer.echo("")


@app.command("diff")
def diff(
    ref: str = typer.Argument("", help="Compare this revision's tree to HEAD"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Show changes (uncommitted changes when no ref is given)."""
    with _errors():
        output = _service().diff(ref, scope=scope)
    if output:
        typer.echo(output, nl=False)


@app.command("revert")
def revert(
    ref: str = typer.Argument(..., help="Revision to reset to"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Hard-reset the store to a revision. Uncommitted changes are lost."""
    with _errors():
        _service().revert(ref, scope=scope)
    typer.echo(f"Reverted to {ref}")


@app.command("show")
def show(
    ref: str = typer.Argument("HEAD", help="Revision"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Show one commit."""
    with _errors():
        c = _service().show(ref, scope=scope)
    typer.echo(f"commit {c.hash}")
    typer.echo(f"Author: {c.author}")
    typer.echo(f"Date:   {c.timestamp.isoformat()}")
    if c.parents:
        typer.echo(f"Parents: {' '.join(p[:7] for p in c.parents)}")
    typer.echo("")
    for line in c.message.splitlines():
        typer.echo(f"    {line}")


@app.command("status")
def status(
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Show the current branch and uncommitted changes."""
    with _errors():
        branch, changes = _service().status(scope=scope)
    typer.echo(f"On branch {branch}")
    if not changes:
        typer.echo("nothing to commit, working tree clean")
        return
    typer.echo("Changes to be committed:")
    for change in changes:
        typer.echo(f"  {change.status}: {change.path}")


@app.command("search")
def search(
    query: str = typer.Argument(..., help="Search text"),
    semantic: bool = typer.Option(False, "--semantic", "-s", help="Use semantic search"),
    number: int = typer.Option(10, "--number", "-n", help="Maximum results"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Search memories by keyword (default) or meaning."""
    service = _service()
    with _errors():
        if semantic:
            results = _run_async(service.semantic_search(query, number, scope=scope))
        else:
            results = service.keyword_search(query, number, scope=scope)

    if json_output:
        print(json_mod.dumps([r.model_dump() for r in results]))
        return
    if not results:
        console.print("[dim]No results.[/dim]")
        return
    table = Table(title=f"Search: {escape(query)}")
    table.add_column("Key", style="cyan")
    table.add_column("Score", justify="right")
    for r in results:
        table.add_row(escape(r.key), f"{r.score:.3f}")
    console.print(table)


@app.command("summarize")
def summarize(
    prefix: str = typer.Argument("", help="Only memories whose key starts with this"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Summarize memories with the default provider."""
    with _errors():
        summary = _run_async(_service().summarize(prefix, scope=scope))
    if json_output:
        print(json_mod.dumps(summary.model_dump()))
        return
    console.print(f"[bold]{escape(summary.title)}[/bold]")
    console.print(escape(summary.overview))
    for point in summary.key_points:
        console.print(f"  - {escape(point)}")
    if summary.tags:
        console.print(f"[dim]Tags: {escape(', '.join(summary.tags))}[/dim]")


@app.command("tag")
def tag(
    key: str = typer.Argument(..., help="Memory key"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Suggest tags for a memory with the default provider."""
    with _errors():
        result = _run_async(_service().auto_tag(key, scope=scope))
    if json_output:
        print(json_mod.dumps(result.model_dump()))
        return
    console.print(f"Tags: {escape(', '.join(result.tags))}")
    if result.category:
        console.print(f"Category: {escape(result.category)} ({result.confidence:.2f})")


@app.command("install")
def install(
    strategy: str = typer.Option("extract", "--strategy", help="extract|summarize|script|all"),
    script: str = typer.Option("", "--script", help="Hook script (strategy=script or all)"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing hook (backs it up)"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Install a git post-commit hook that records commits as memories."""
    with _errors():
        path = _service().install_hook(strategy, script, force, scope=scope)
    console.print(f"[green]Installed post-commit hook:[/green] {path}")


@app.command("uninstall")
def uninstall(
    keep_config: bool = typer.Option(False, "--keep-config", help="Keep hook settings in config"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Remove the managed post-commit hook."""
    with _errors():
        _service().uninstall_hook(keep_config, scope=scope)
    console.print("[green]Uninstalled post-commit hook[/green]")


# --- Index sub-commands ---


@index_app.command("rebuild")
def index_rebuild(
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Re-embed every memory into a fresh index."""
    with _errors():
        count = _run_async(_service().rebuild_index(scope=scope))
    console.print(f"[green]Index rebuilt:[/green] {count} memories")


@index_app.command("status")
def index_status(
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Show how many memories are indexed."""
    with _errors():
        count, dim = _service().index_status(scope=scope)
    if count == 0:
        console.print("[dim]Index is empty. Run[/dim] [cyan]mem index rebuild[/cyan]")
        return
    console.print(f"{count} memories indexed (dim={dim})")


# --- Branch sub-commands ---


@branch_app.command("current")
def branch_current(
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Print the checked-out branch."""
    with _errors():
        branch = _service().branch_current(scope=scope)
    typer.echo(branch.name)


@branch_app.command("list")
def branch_list(
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """List branches (current marked with *)."""
    service = _service()
    with _errors():
        current = service.branch_current(scope=scope).name
        branches = service.branch_list(scope=scope)
    for b in branches:
        marker = "*" if b.name == current else " "
        typer.echo(f"{marker} {b.name}")


@branch_app.command("create")
def branch_create(
    name: str = typer.Argument(..., help="Branch name"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Create a branch at HEAD (does not switch)."""
    with _errors():
        branch = _service().branch_create(name, scope=scope)
    typer.echo(f"Created branch {branch.name} at {branch.head[:7]}")


@branch_app.command("switch")
def branch_switch(
    name: str = typer.Argument(..., help="Branch name"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Check out a branch."""
    with _errors():
        _service().branch_switch(name, scope=scope)
    typer.echo(f"Switched to branch {name}")


@branch_app.command("delete")
def branch_delete(
    name: str = typer.Argument(..., help="Branch name"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Delete a branch other than the current one."""
    with _errors():
        _service().branch_delete(name, scope=scope)
    typer.echo(f"Deleted branch {name}")


# --- Provider sub-commands ---


@provider_app.command("list")
def provider_list(
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """List registered providers."""
    with _errors():
        names, default = _service().provider_list(scope=scope)
    if not names:
        console.print("[dim]No providers configured.[/dim]")
        return
    for name in names:
        typer.echo(f"{name} (default)" if name == default else name)


@provider_app.command("add")
def provider_add(
    name: str = typer.Argument(..., help="Provider name (openai, openrouter, anthropic, ...)"),
    api_key: str = typer.Option("", "--api-key", help="API key (else read from env)"),
    base_url: str = typer.Option("", "--base-url", help="OpenAI-compatible endpoint"),
    model: str = typer.Option("", "--model", help="Model name"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Register or replace a provider."""
    with _errors():
        _service().provider_add(name, api_key, base_url, model, scope=scope)
    console.print(f"[green]Added provider[/green] {escape(name)}")


@provider_app.command("remove")
def provider_remove(
    name: str = typer.Argument(..., help="Provider name"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Remove a provider."""
    with _errors():
        _service().provider_remove(name, scope=scope)
    console.print(f"Removed provider {escape(name)}")


@provider_app.command("default")
def provider_default(
    name: str = typer.Argument(..., help="Provider name"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Make a registered provider the default."""
    with _errors():
        _service().provider_set_default(name, scope=scope)
    console.print(f"Default provider: {escape(name)}")


@provider_app.command("test")
def provider_test(
    name: str = typer.Argument(..., help="Provider name"),
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Send a short prompt through a provider."""
    with _errors():
        reply = _run_async(_service().provider_test(name, scope=scope))
    console.print(f"[green]OK[/green] {escape(reply.strip())}")


# --- Config sub-commands ---


@config_app.command("show")
def config_show(
    scope: str = typer.Option("", "--scope", help=SCOPE_HELP),
) -> None:
    """Show the resolved configuration for a scope."""
    from dataclasses import asdict

    import yaml
    from rich.syntax import Syntax

    service = _service()
    with _errors():
        target = service.scope(scope)
        config = service.config(target)
    console.print(f"[dim]{target.config_path}[/dim]")
    content = yaml.safe_dump(asdict(config), default_flow_style=False, sort_keys=False)
    console.print(Syntax(content, "yaml", theme="monokai"))


# --- Hook entry point ---


@hook_app.command("run")
def hook_run(
    hook_type: str = typer.Argument(..., help="Hook type (post-commit)"),
) -> None:
    """Handle a git hook. Never fails the commit."""
    from .git import gather_commit_context
    from .reindex import ReindexQueue, launch_detached_reindex

    if hook_type != "post-commit":
        print(f"mem hook: unsupported hook type: {hook_type}", file=sys.stderr)
        return

    ctx = gather_commit_context(Path.cwd())
    if ctx is None:
        print("mem hook: failed to gather commit context", file=sys.stderr)
        return

    cwd = Path.cwd()
    reindex = ReindexQueue(lambda: launch_detached_reindex(cwd))
    try:
        _run_async(_service(reindex=reindex).run_hook(hook_type, ctx))
    except Exception as e:
        print(f"mem hook: {e}", file=sys.stderr)
    # Only waits for the child to be spawned, not for indexing.
    reindex.wait(timeout=5)
