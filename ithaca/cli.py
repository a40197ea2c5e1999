import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import click

from ithaca.index.branch import branch_for
from ithaca.index.log import setup_logging
from ithaca.index.models.enums import OpenTarget
from ithaca.index.models.repo import Repo, normalize_path
from ithaca.index.opener import OpenTargetError
from ithaca.index.repo_store import PathNotAllowedError, RepoNotFoundError, RepoStore
from ithaca.index.settings import get_settings

T = TypeVar("T")

LOG_LEVELS = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
TARGET_CHOICES = click.Choice([target.value for target in OpenTarget])


def _run(action: Callable[[RepoStore], Awaitable[T]]) -> T:
    """Load the store, run *action* against it, and return its result."""
    settings = get_settings()
    ctx = click.get_current_context(silent=True)
    options = (ctx.find_root().obj if ctx else None) or {}
    setup_logging(options.get("log_level") or settings.log_level)
    store = RepoStore.from_settings(settings)

    async def _main() -> T:
        await store.load()
        return await action(store)

    return asyncio.run(_main())


def _find_repo(store: RepoStore, needle: str) -> Repo:
    """Resolve a repo by path, case-insensitive name, or id prefix."""
    lowered = needle.lower()
    path = normalize_path(needle)
    matches = [repo for repo in store.repos if repo.path == path or repo.name.lower() == lowered]
    if not matches:
        matches = [repo for repo in store.repos if repo.id.startswith(lowered)]
    if not matches:
        msg = f"No repository matches '{needle}'."
        raise click.ClickException(msg)
    if len(matches) > 1:
        paths = ", ".join(repo.path for repo in matches)
        msg = f"'{needle}' is ambiguous: {paths}"
        raise click.ClickException(msg)
    return matches[0]


async def _echo_repos(repos: Sequence[Repo], *, branches: bool) -> None:
    if not repos:
        click.echo("No repositories.")
        return
    for repo in repos:
        marker = "*" if repo.is_pinned else " "
        line = f"{marker} {repo.name}\t{repo.path}"
        if branches:
            branch = await branch_for(repo.path)
            if branch:
                line += f"\t({branch})"
        click.echo(line)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Override ITHACA_LOG_LEVEL for this run (e.g. DEBUG).",
)
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """Ithaca - find and open the repositories under your workspace roots."""
    ctx.ensure_object(dict)["log_level"] = log_level


@main.command()
def scan() -> None:
    """Rescan every workspace root and refresh the index."""

    async def action(store: RepoStore) -> int:
        if not store.workspace_roots:
            click.echo("No workspace roots configured. Add one with `ithaca roots add PATH`.")
        await store.rescan()
        return len(store.repos)

    count = _run(action)
    click.echo(f"Indexed {count} repositories.")


@main.command()
@click.argument("query", default="")
@click.option("--limit", default=20, show_default=True, type=int, help="Maximum results to show.")
@click.option("--branches/--no-branches", default=None, help="Show the checked-out branch (default: see `ithaca show-branches`).")
def search(query: str, limit: int, branches: bool | None) -> None:
    """Fuzzy-search indexed repositories by name.

    With no QUERY, lists pinned and recently opened repositories.
    """

    async def action(store: RepoStore) -> None:
        show_branches = store.show_branches if branches is None else branches
        await _echo_repos(store.search(query)[:limit], branches=show_branches)

    _run(action)


@main.command()
def recent() -> None:
    """List recently opened repositories, most recent first."""

    async def action(store: RepoStore) -> None:
        await _echo_repos(store.recent_repos(), branches=False)

    _run(action)


@main.command()
def pinned() -> None:
    """List pinned repositories."""

    async def action(store: RepoStore) -> None:
        await _echo_repos(store.pinned_repos(), branches=False)

    _run(action)


@main.command()
@click.argument("repo")
def pin(repo: str) -> None:
    """Pin REPO (name, path, or id prefix)."""

    async def action(store: RepoStore) -> str:
        found = _find_repo(store, repo)
        await store.set_pinned(found.id, True)
        return found.name

    click.echo(f"Pinned {_run(action)}.")


@main.command()
@click.argument("repo")
def unpin(repo: str) -> None:
    """Unpin REPO (name, path, or id prefix)."""

    async def action(store: RepoStore) -> str:
        found = _find_repo(store, repo)
        await store.set_pinned(found.id, False)
        return found.name

    click.echo(f"Unpinned {_run(action)}.")


@main.command("set-target")
@click.argument("repo")
@click.argument("target", type=click.Choice([*(t.value for t in OpenTarget), "default"]))
def set_target(repo: str, target: str) -> None:
    """Choose which application REPO opens with ('default' clears the override)."""

    async def action(store: RepoStore) -> str:
        found = _find_repo(store, repo)
        await store.set_open_target(found.id, None if target == "default" else OpenTarget(target))
        return found.name

    click.echo(f"{_run(action)} now opens with {target}.")


@main.command("open")
@click.argument("repo")
@click.option("--with", "target", type=TARGET_CHOICES, default=None, help="Override the application for this launch.")
def open_(repo: str, target: str | None) -> None:
    """Open REPO in an external application and record it as opened."""

    async def action(store: RepoStore) -> str:
        found = _find_repo(store, repo)
        try:
            opened = await store.open_repo(found.id, OpenTarget(target) if target else None)
        except (OpenTargetError, PathNotAllowedError, RepoNotFoundError) as exc:
            raise click.ClickException(_describe(exc)) from None
        return opened.name

    click.echo(f"Opened {_run(action)}.")


def _describe(exc: Exception) -> str:
    if isinstance(exc, PathNotAllowedError):
        return "Repository path is outside configured directories."
    if isinstance(exc, RepoNotFoundError):
        return f"Repository '{exc}' is no longer indexed."
    return str(exc)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


@main.command("default-target")
@click.argument("target", required=False, type=click.Choice([*(t.value for t in OpenTarget), "default"]))
def default_target(target: str | None) -> None:
    """Show or change the application repositories open with by default.

    'default' drops the saved choice and falls back to ITHACA_DEFAULT_OPEN_TARGET.
    """

    async def action(store: RepoStore) -> OpenTarget:
        if target is not None:
            await store.set_default_open_target(None if target == "default" else OpenTarget(target))
        return store.default_open_target

    current = _run(action)
    click.echo(f"Default open target: {current} ({current.display_name}).")


@main.command("show-branches")
@click.argument("state", required=False, type=click.Choice(["on", "off", "default"]))
def show_branches(state: str | None) -> None:
    """Show or change whether listings include the checked-out branch."""

    async def action(store: RepoStore) -> bool:
        if state is not None:
            await store.set_show_branches(None if state == "default" else state == "on")
        return store.show_branches

    click.echo(f"Branch display is {'on' if _run(action) else 'off'}.")


# ---------------------------------------------------------------------------
# Workspace roots
# ---------------------------------------------------------------------------


@main.group()
def roots() -> None:
    """Manage the directories scanned for repositories."""


@roots.command("list")
def list_roots() -> None:
    """Show configured workspace roots."""

    async def action(store: RepoStore) -> tuple[str, ...]:
        return store.workspace_roots

    configured = _run(action)
    if not configured:
        click.echo("No workspace roots configured.")
    for path in configured:
        click.echo(path)


@roots.command("add")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option("--bookmark", default=None, help="Opaque access token for sandboxed platforms.")
def add_root(path: str, bookmark: str | None) -> None:
    """Add PATH as a workspace root and rescan."""

    async def action(store: RepoStore) -> int:
        await store.add_workspace_root(path, bookmark=bookmark)
        return len(store.repos)

    count = _run(action)
    click.echo(f"Added {normalize_path(path)} ({count} repositories indexed).")


@roots.command("remove")
@click.argument("path")
def remove_root(path: str) -> None:
    """Remove PATH from the workspace roots and rescan."""

    async def action(store: RepoStore) -> bool:
        known = normalize_path(path) in store.workspace_roots
        if known:
            await store.remove_workspace_root(path)
        return known

    if not _run(action):
        msg = f"'{path}' is not a workspace root."
        raise click.ClickException(msg)
    click.echo(f"Removed {normalize_path(path)}.")


if __name__ == "__main__":
    main()
