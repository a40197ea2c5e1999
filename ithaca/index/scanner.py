"""Filesystem scanner for version-controlled repositories.

Walks every configured workspace root and reports each directory that holds a
repository marker:

- a ``.git`` directory, or
- a ``.git`` file containing ``gitdir: <path>`` that points at an existing
  directory (linked worktrees and submodules).

Rules:

- A root that is itself a repository is reported and not descended into.
- Hidden directories and directories whose *name* is in the ignore set are
  pruned; their contents are never visited.
- Once a repository is found its subtree is skipped, so nested repositories
  are never reported.
- Symbolic links to directories are not followed.  A link that points at a
  repository is reported under the link's own path.
- Directories whose names are not valid UTF-8 are skipped.
- Results are deduplicated by ``Repo.id`` across all roots (first root wins).

The walk is synchronous and may take a long time on large trees; callers run
it on a worker thread.  Failures are per-root: a missing, unreadable, or
inaccessible root is logged and skipped, and a root whose walk breaks midway
keeps whatever it produced before the error.
"""

from __future__ import annotations

import os
from collections.abc import Collection, Sequence
from pathlib import Path

from loguru import logger

from ithaca.index.access import AccessResolver, PathAccessResolver, root_access
from ithaca.index.models.repo import Repo, WorkspaceRoot

MARKER = ".git"
GITDIR_PREFIX = "gitdir:"
MAX_POINTER_BYTES = 4096

DEFAULT_IGNORED_DIRECTORIES = frozenset({
    "node_modules",
    ".venv",
    "dist",
    "build",
    ".tox",
    ".pytest_cache",
    ".mypy_cache",
    ".next",
    "target",
    ".gradle",
})


# ---------------------------------------------------------------------------
# Repository markers
# ---------------------------------------------------------------------------


def read_small_text(path: str | Path, limit: int = MAX_POINTER_BYTES) -> str | None:
    """Read at most *limit* bytes of a small text file, stripped.

    Returns ``None`` when the file cannot be read or is not UTF-8.
    """
    try:
        with open(path, "rb") as f:
            data = f.read(limit)
    except OSError:
        return None
    try:
        return data.decode("utf-8").strip()
    except UnicodeDecodeError:
        return None


def resolve_git_dir(repo_path: str | Path, *, contained: bool = False) -> Path | None:
    """Return the git metadata directory for *repo_path*, or ``None``.

    With ``contained=True`` a ``gitdir:`` pointer must resolve to a location
    inside the repository itself.
    """
    repo = os.path.normpath(os.path.abspath(repo_path))
    dot_git = os.path.join(repo, MARKER)
    if os.path.isdir(dot_git):
        return Path(dot_git)
    if not os.path.isfile(dot_git):
        return None

    contents = read_small_text(dot_git)
    if not contents or not contents.startswith(GITDIR_PREFIX):
        return None
    pointer = contents[len(GITDIR_PREFIX) :].splitlines()
    target = pointer[0].strip() if pointer else ""
    if not target:
        return None

    git_dir = os.path.normpath(target if os.path.isabs(target) else os.path.join(repo, target))
    if contained and not git_dir.startswith(repo + os.sep):
        return None
    if not os.path.isdir(git_dir):
        return None
    return Path(git_dir)


def is_repository(path: str | Path) -> bool:
    """True when *path* holds a repository marker."""
    return resolve_git_dir(path) is not None


# ---------------------------------------------------------------------------
# Walk
# ---------------------------------------------------------------------------


def _log_walk_error(exc: OSError) -> None:
    logger.debug("Skipping unreadable directory {}: {}", exc.filename, exc.strerror or exc)


def _emit(path: str, root: WorkspaceRoot, found: list[Repo]) -> None:
    try:
        found.append(Repo.from_path(path, root=root))
    except ValueError:
        # Names that are not valid UTF-8 cannot be given a stable id.
        logger.warning("Skipping repository with undecodable path: {!r}", path)


def _walk_root(base: Path, root: WorkspaceRoot, ignored: frozenset[str], found: list[Repo]) -> None:
    """Append every repository under *base* to *found*.

    Appends as it goes so that a caller catching an error mid-walk still sees
    the repositories collected up to that point.
    """
    top = str(base)
    if not os.path.isdir(top):
        logger.info("Skipping workspace root {}: not a directory", top)
        return

    if is_repository(top):
        _emit(top, root, found)
        return

    for dirpath, dirnames, _filenames in os.walk(top, onerror=_log_walk_error):
        descend: list[str] = []
        for name in sorted(dirnames):
            if name.startswith(".") or name in ignored:
                continue
            candidate = os.path.join(dirpath, name)
            if is_repository(candidate):
                _emit(candidate, root, found)
                continue
            if os.path.islink(candidate):
                continue
            descend.append(name)
        # Prune in place: os.walk only visits what is left in dirnames.
        dirnames[:] = descend


def scan_workspace_roots(
    roots: Sequence[WorkspaceRoot | str],
    ignored_directories: Collection[str] = DEFAULT_IGNORED_DIRECTORIES,
    *,
    access: AccessResolver | None = None,
) -> list[Repo]:
    """Scan *roots* and return the deduplicated repositories found.

    Output order is unspecified; ``RepoStore`` imposes the final order.
    """
    resolver = access or PathAccessResolver()
    ignored = frozenset(ignored_directories)
    results: list[Repo] = []
    seen: set[str] = set()

    for entry in roots:
        root = entry if isinstance(entry, WorkspaceRoot) else WorkspaceRoot(path=entry)
        found: list[Repo] = []
        try:
            with root_access(resolver, root) as base:
                _walk_root(base, root, ignored, found)
        except (OSError, ValueError) as exc:
            logger.warning("Scan of workspace root {} stopped early: {}", root.path, exc)

        for repo in found:
            if repo.id in seen:
                continue
            seen.add(repo.id)
            results.append(repo)

    logger.debug("Scanned {} root(s), found {} repositories", len(roots), len(results))
    return results
