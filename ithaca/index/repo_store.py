"""Repository store -- the authoritative in-memory repository collection.

The RepoStore is a process-level singleton owned by one asyncio event loop
(the "main context").  It coordinates between:

- **Scanner**: filesystem walk, run on a worker thread via ``anyio.to_thread``
- **Index store**: JSON cache of the repository list and the root config
- **Launcher**: external application that opens a repository

All state (``repos``, ``workspace_roots``, ``is_scanning``) is mutated only by
coroutines running on the owning loop.  Scan results are applied in one step
after the walk completes, so subscribers never observe a partial update.

Rescans coalesce: a ``rescan()`` issued while a scan is in flight is
remembered (at most once) and re-run as soon as the current scan finishes.

Filesystem and persistence failures are absorbed here and logged.  Only
``open_repo`` raises to the caller, since a failed launch is something the
user can act on.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Collection, Iterable
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from anyio import to_thread
from loguru import logger

from ithaca.index.models.enums import ChangeKind, OpenTarget
from ithaca.index.models.events import StoreChange, StoreSnapshot
from ithaca.index.models.repo import Repo, RepoIndex, RootsConfig, WorkspaceRoot, normalize_path
from ithaca.index.opener import Launcher
from ithaca.index.ranker import rank
from ithaca.index.scanner import DEFAULT_IGNORED_DIRECTORIES, scan_workspace_roots
from ithaca.index.store.local import LocalIndexStore

if TYPE_CHECKING:
    from ithaca.index.access import AccessResolver
    from ithaca.index.settings import IthacaSettings
    from ithaca.index.store.base import IndexStore

Scanner = Callable[..., list[Repo]]
Subscriber = Callable[[StoreChange], None]

DEFAULT_RECENT_LIMIT = 12


class RepoNotFoundError(LookupError):
    """Raised when a repository id is not in the store."""


class PathNotAllowedError(ValueError):
    """Raised when a repository path lies outside every configured root."""


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_repos(scanned: Iterable[Repo], existing: Iterable[Repo]) -> list[Repo]:
    """Carry user state from *existing* onto a fresh scan.

    Every scanned entry survives, inheriting ``last_opened``, ``is_pinned``
    and ``open_target`` from the prior record with the same id.  Prior-only
    entries are dropped.  The result is sorted by case-insensitive name.
    """
    prior = {repo.id: repo for repo in existing}
    merged: list[Repo] = []
    for repo in scanned:
        old = prior.get(repo.id)
        if old is not None:
            repo = repo.model_copy(
                update={
                    "last_opened": old.last_opened,
                    "is_pinned": old.is_pinned,
                    "open_target": old.open_target,
                }
            )
        merged.append(repo)
    merged.sort(key=lambda r: r.name.lower())
    return merged


def _unique_roots(roots: Iterable[WorkspaceRoot]) -> list[WorkspaceRoot]:
    seen: set[str] = set()
    unique: list[WorkspaceRoot] = []
    for root in roots:
        if root.path in seen:
            continue
        seen.add(root.path)
        unique.append(root)
    return unique


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class RepoStore:
    """Owns the repository list, the workspace roots, and the scanning flag."""

    def __init__(
        self,
        store: IndexStore,
        *,
        scanner: Scanner = scan_workspace_roots,
        access: AccessResolver | None = None,
        launcher: Launcher | None = None,
        ignored_directories: Collection[str] = DEFAULT_IGNORED_DIRECTORIES,
        default_open_target: OpenTarget = OpenTarget.VSCODE,
        show_branches: bool = False,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
    ) -> None:
        self._store = store
        self._scanner = scanner
        self._access = access
        self._launcher = launcher or Launcher()
        self._ignored = frozenset(ignored_directories)
        self._base_open_target = default_open_target
        self._base_show_branches = show_branches
        self._recent_limit = recent_limit

        self._repos: list[Repo] = []
        self._roots: list[WorkspaceRoot] = []
        self._is_scanning = False
        self._rescan_pending = False
        self._subscribers: list[Subscriber] = []
        # Runtime preferences persisted in roots.json; None falls back to the base values.
        self._open_target_preference: OpenTarget | None = None
        self._show_branches_preference: bool | None = None

    @classmethod
    def from_settings(cls, settings: IthacaSettings, **kwargs: Any) -> RepoStore:
        """Build a store backed by ``LocalIndexStore`` under ``settings.data_dir``."""
        return cls(
            LocalIndexStore(settings.data_dir),
            ignored_directories=settings.ignored_directories,
            default_open_target=settings.default_open_target,
            show_branches=settings.show_branches,
            recent_limit=settings.recent_limit,
            **kwargs,
        )

    # -- Published state -------------------------------------------------------

    @property
    def repos(self) -> tuple[Repo, ...]:
        return tuple(self._repos)

    @property
    def workspace_roots(self) -> tuple[str, ...]:
        return tuple(root.path for root in self._roots)

    @property
    def roots(self) -> tuple[WorkspaceRoot, ...]:
        return tuple(self._roots)

    @property
    def is_scanning(self) -> bool:
        return self._is_scanning

    @property
    def default_open_target(self) -> OpenTarget:
        return self._open_target_preference or self._base_open_target

    @property
    def show_branches(self) -> bool:
        if self._show_branches_preference is None:
            return self._base_show_branches
        return self._show_branches_preference

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            repos=tuple(self._repos),
            workspace_roots=self.workspace_roots,
            is_scanning=self._is_scanning,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call *callback* after every published change.  Returns an unsubscribe."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, kind: ChangeKind) -> None:
        if not self._subscribers:
            return
        change = StoreChange(kind=kind, snapshot=self.snapshot())
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                logger.exception("Store subscriber failed on {} change", kind)

    # -- Startup ---------------------------------------------------------------

    async def load(self) -> None:
        """Load roots and the cached index.  Missing or corrupt files mean empty."""
        try:
            config = await self._store.read_roots()
        except FileNotFoundError:
            config = RootsConfig()
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable workspace root config: {}", exc)
            config = RootsConfig()
        self._roots = _unique_roots(config.roots)
        self._open_target_preference = config.default_open_target
        self._show_branches_preference = config.show_branches

        try:
            index = await self._store.read_index()
        except FileNotFoundError:
            index = RepoIndex()
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable repository cache: {}", exc)
            index = RepoIndex()
        self._repos = list(index.repos)

        logger.info("Loaded {} workspace root(s) and {} cached repositories", len(self._roots), len(self._repos))
        self._publish(ChangeKind.ROOTS)
        self._publish(ChangeKind.PREFERENCES)
        self._publish(ChangeKind.REPOS)

    async def load_and_rescan(self) -> None:
        await self.load()
        if self._roots:
            await self.rescan()

    # -- Roots -----------------------------------------------------------------

    async def add_workspace_root(self, path: str, bookmark: str | None = None) -> None:
        """Append a root and rescan.  No-op if the root is already configured."""
        root = WorkspaceRoot(path=path, bookmark=bookmark)
        if root.path in self.workspace_roots:
            return
        self._roots.append(root)
        logger.info("Workspace root added: {}", root.path)
        self._publish(ChangeKind.ROOTS)
        await self._save_roots()
        await self.rescan()

    async def remove_workspace_root(self, path: str) -> None:
        """Remove a root (if present) and rescan."""
        target = normalize_path(path)
        self._roots = [root for root in self._roots if root.path != target]
        logger.info("Workspace root removed: {}", target)
        self._publish(ChangeKind.ROOTS)
        await self._save_roots()
        await self.rescan()

    # -- Scan ------------------------------------------------------------------

    async def rescan(self) -> None:
        """Rescan all roots, or defer to the scan already in flight.

        The call that starts a scan returns once it (and any coalesced
        follow-up) has finished.  Calls made while busy return immediately.
        """
        if self._is_scanning:
            self._rescan_pending = True
            logger.debug("Scan in progress; rescan deferred")
            return

        while True:
            self._rescan_pending = False
            await self._scan_once()
            if not self._rescan_pending:
                break

    async def _scan_once(self) -> None:
        if not self._roots:
            self._repos = []
            self._publish(ChangeKind.REPOS)
            await self._save_index()
            return

        roots = list(self._roots)
        self._is_scanning = True
        self._publish(ChangeKind.SCAN_STARTED)
        scanned: list[Repo] | None = None
        try:
            scanned = await to_thread.run_sync(partial(self._scanner, roots, self._ignored, access=self._access))
        except Exception:
            logger.exception("Scan failed; keeping {} cached repositories", len(self._repos))
        finally:
            self._is_scanning = False

        if scanned is None:
            self._publish(ChangeKind.SCAN_FINISHED)
            return
        # Merge against current state so changes made during the walk survive.
        self._repos = merge_repos(scanned, self._repos)

        logger.info("Scan finished: {} repositories across {} root(s)", len(self._repos), len(roots))
        self._publish(ChangeKind.REPOS)
        self._publish(ChangeKind.SCAN_FINISHED)
        await self._save_index()

    # -- User state ------------------------------------------------------------

    async def mark_opened(self, repo_id: str) -> None:
        """Stamp ``last_opened`` with the current time.  Unknown ids are ignored."""
        await self._update(repo_id, last_opened=datetime.now(UTC))

    async def set_pinned(self, repo_id: str, pinned: bool) -> None:
        await self._update(repo_id, is_pinned=pinned)

    async def toggle_pin(self, repo_id: str) -> None:
        repo = self.get(repo_id)
        if repo is not None:
            await self._update(repo_id, is_pinned=not repo.is_pinned)

    async def set_open_target(self, repo_id: str, target: OpenTarget | None) -> None:
        """Override (or with ``None``, reset) the application a repo opens with."""
        await self._update(repo_id, open_target=target)

    async def _update(self, repo_id: str, **changes: Any) -> bool:
        for i, repo in enumerate(self._repos):
            if repo.id == repo_id:
                self._repos[i] = repo.model_copy(update=changes)
                break
        else:
            return False
        self._publish(ChangeKind.REPOS)
        await self._save_index()
        return True

    # -- Preferences -----------------------------------------------------------

    async def set_default_open_target(self, target: OpenTarget | None) -> None:
        """Change the target used by repos without an override.  ``None`` resets it."""
        self._open_target_preference = target
        logger.info("Default open target: {}", self.default_open_target)
        self._publish(ChangeKind.PREFERENCES)
        await self._save_roots()

    async def set_show_branches(self, show: bool | None) -> None:
        """Toggle branch display in listings.  ``None`` resets it."""
        self._show_branches_preference = show
        self._publish(ChangeKind.PREFERENCES)
        await self._save_roots()

    # -- Query -----------------------------------------------------------------

    def get(self, repo_id: str) -> Repo | None:
        return next((repo for repo in self._repos if repo.id == repo_id), None)

    def recent_repos(self) -> list[Repo]:
        """Opened repositories, most recent first (ties by name), capped."""
        opened = [repo for repo in self._repos if repo.last_opened is not None]
        opened.sort(key=lambda r: (-r.last_opened.timestamp(), r.name.lower()))  # type: ignore[union-attr]
        return opened[: self._recent_limit]

    def pinned_repos(self) -> list[Repo]:
        return [repo for repo in self._repos if repo.is_pinned]

    def search(self, query: str) -> list[Repo]:
        """The list a launcher UI displays for *query*.

        Empty query: pinned repos, then recently opened unpinned repos.
        Otherwise: ranked pinned matches, then ranked unpinned matches.
        """
        if not query.strip():
            recent = [repo for repo in self.recent_repos() if not repo.is_pinned]
            return self.pinned_repos() + recent
        pinned = rank([repo for repo in self._repos if repo.is_pinned], query)
        others = rank([repo for repo in self._repos if not repo.is_pinned], query)
        return pinned + others

    def is_path_allowed(self, path: str) -> bool:
        """True when *path* is a configured root or lies beneath one."""
        candidate = normalize_path(path)
        for root in self._roots:
            prefix = root.path if root.path.endswith(os.sep) else root.path + os.sep
            if candidate == root.path or candidate.startswith(prefix):
                return True
        return False

    def resolve_open_target(self, repo: Repo) -> OpenTarget:
        return repo.open_target or self.default_open_target

    # -- Open ------------------------------------------------------------------

    async def open_repo(self, repo_id: str, target: OpenTarget | None = None) -> Repo:
        """Open a repository externally and record it as opened.

        Raises ``RepoNotFoundError``, ``PathNotAllowedError``, or
        ``OpenTargetError``; state is only touched on success.
        """
        repo = self.get(repo_id)
        if repo is None:
            raise RepoNotFoundError(repo_id)
        if not self.is_path_allowed(repo.path):
            raise PathNotAllowedError(repo.path)

        await self._launcher.open(target or self.resolve_open_target(repo), repo.path)
        await self.mark_opened(repo.id)
        return self.get(repo.id) or repo

    # -- Persistence -----------------------------------------------------------

    async def _save_index(self) -> None:
        try:
            await self._store.write_index(RepoIndex(repos=self._repos))
        except OSError as exc:
            logger.warning("Could not persist repository cache: {}", exc)

    async def _save_roots(self) -> None:
        try:
            config = RootsConfig(
                roots=self._roots,
                default_open_target=self._open_target_preference,
                show_branches=self._show_branches_preference,
            )
            await self._store.write_roots(config)
        except OSError as exc:
            logger.warning("Could not persist workspace roots: {}", exc)
