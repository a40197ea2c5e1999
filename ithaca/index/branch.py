"""Current-branch lookup for a repository.

Reads ``HEAD`` straight from the git metadata directory instead of spawning
``git``; listing many repositories stays cheap.
"""

from __future__ import annotations

from functools import partial
from pathlib import Path

from anyio import to_thread

from ithaca.index.scanner import read_small_text, resolve_git_dir

REF_PREFIX = "ref: "


def read_branch(repo_path: str | Path) -> str | None:
    """Return the short branch name checked out in *repo_path*.

    ``None`` for a detached HEAD, a missing or unreadable HEAD, or a
    ``gitdir:`` pointer that leaves the repository.
    """
    git_dir = resolve_git_dir(repo_path, contained=True)
    if git_dir is None:
        return None
    head = read_small_text(git_dir / "HEAD")
    if not head or not head.startswith(REF_PREFIX):
        return None
    ref = head[len(REF_PREFIX) :].strip()
    return ref.rsplit("/", 1)[-1] or None


async def branch_for(repo_path: str | Path) -> str | None:
    return await to_thread.run_sync(partial(read_branch, repo_path))
