"""Access grants for workspace roots.

Some platforms only let a sandboxed process read a user-chosen directory
through a persisted, time-limited capability (a security-scoped bookmark).
A root may therefore carry an opaque ``bookmark`` token that must be resolved
to a usable path before scanning and released afterwards.

``AccessResolver`` abstracts that capability.  ``PathAccessResolver`` is the
default for platforms without such a sandbox: the token is ignored and the
root's own path is used.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger

from ithaca.index.models.repo import WorkspaceRoot


class AccessDeniedError(PermissionError):
    """Raised when a root's access grant cannot be resolved."""


@runtime_checkable
class AccessResolver(Protocol):
    """Acquire and release read access to a workspace root."""

    def acquire(self, root: WorkspaceRoot) -> Path:
        """Return a readable path for *root*.  Raises ``AccessDeniedError``."""
        ...

    def release(self, root: WorkspaceRoot, path: Path) -> None:
        """Give back a grant obtained from ``acquire``."""
        ...


class PathAccessResolver:
    """No-op resolver: every root is readable at its configured path."""

    def acquire(self, root: WorkspaceRoot) -> Path:
        return Path(root.path)

    def release(self, root: WorkspaceRoot, path: Path) -> None:
        return None


@contextmanager
def root_access(resolver: AccessResolver, root: WorkspaceRoot) -> Iterator[Path]:
    """Hold an access grant for *root* for the duration of the block.

    The grant is released on normal exit, early return, and error alike.
    """
    path = resolver.acquire(root)
    logger.debug("Access acquired for root {}", root.path)
    try:
        yield path
    finally:
        resolver.release(root, path)
        logger.debug("Access released for root {}", root.path)
