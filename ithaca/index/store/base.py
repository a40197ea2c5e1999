"""Index store interface for the repository cache and root configuration.

The index store holds two small JSON documents:

- the repository index (a derived cache, rebuilt by every scan), and
- the workspace root configuration (user input, the source of truth for
  what gets scanned).

The interface is async so file I/O never blocks the event loop that owns the
``RepoStore``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ithaca.index.models.repo import RepoIndex, RootsConfig


@runtime_checkable
class IndexStore(Protocol):
    """Async protocol for reading and writing the index and root config.

    Storage layout:
        {root}/index.json
        {root}/roots.json
    """

    async def write_index(self, index: RepoIndex) -> None:
        """Write the repository index atomically."""
        ...

    async def read_index(self) -> RepoIndex:
        """Read the repository index.  Raises ``FileNotFoundError`` if missing."""
        ...

    async def write_roots(self, config: RootsConfig) -> None:
        """Write the workspace root configuration atomically."""
        ...

    async def read_roots(self) -> RootsConfig:
        """Read the root configuration.  Raises ``FileNotFoundError`` if missing."""
        ...
