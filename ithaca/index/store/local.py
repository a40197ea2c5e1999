"""Local filesystem index store.

Stores the repository index and root configuration as JSON files under the
data root::

    {data_root}/index.json
    {data_root}/roots.json

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: data is written to a temporary file in the same directory,
then renamed over the target path.  A crash mid-write leaves the previous file
intact.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from functools import partial
from pathlib import Path

from anyio import to_thread

from ithaca.index.models.repo import RepoIndex, RootsConfig

INDEX_FILE = "index.json"
ROOTS_FILE = "roots.json"


class LocalIndexStore:
    """Local filesystem implementation of the IndexStore protocol."""

    def __init__(self, data_root: str | Path) -> None:
        self._base = Path(data_root).expanduser()

    @property
    def index_path(self) -> Path:
        return self._base / INDEX_FILE

    @property
    def roots_path(self) -> Path:
        return self._base / ROOTS_FILE

    # -- Index -----------------------------------------------------------------

    async def write_index(self, index: RepoIndex) -> None:
        data = index.model_dump_json(by_alias=True, exclude_none=True, indent=2)
        await to_thread.run_sync(partial(_atomic_write, self.index_path, data))

    async def read_index(self) -> RepoIndex:
        raw = await to_thread.run_sync(partial(_read_file, self.index_path))
        return RepoIndex.model_validate_json(raw)

    # -- Roots -----------------------------------------------------------------

    async def write_roots(self, config: RootsConfig) -> None:
        data = config.model_dump_json(exclude_none=True, indent=2)
        await to_thread.run_sync(partial(_atomic_write, self.roots_path, data))

    async def read_roots(self) -> RootsConfig:
        raw = await to_thread.run_sync(partial(_read_file, self.roots_path))
        return RootsConfig.model_validate_json(raw)


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + replace.

    Ensures readers never see a partially-written file.  The temp file is
    created in the same directory so ``os.replace`` is atomic on POSIX.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_file(path: Path) -> str:
    """Read file contents.  Raises ``FileNotFoundError`` if missing."""
    return path.read_text(encoding="utf-8")
