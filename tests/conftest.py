"""Shared test fixtures: fake repository trees and isolated settings.

Tests build small directory trees under ``tmp_path``.  A "repository" is any
directory holding a ``.git`` directory; no real git binary is needed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from ithaca.index.settings import _get_settings_cached


def create_git_repo(path: Path, *, head: str = "ref: refs/heads/main\n") -> Path:
    """Create *path* with a minimal ``.git`` directory and return it."""
    git_dir = path / ".git"
    git_dir.mkdir(parents=True)
    (git_dir / "HEAD").write_text(head, encoding="utf-8")
    return path


@pytest.fixture
def make_repo() -> Callable[..., Path]:
    return create_git_repo


# ---------------------------------------------------------------------------
# Settings isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def data_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point ``ITHACA_DATA_ROOT`` at a temp dir and reset the settings cache."""
    root = tmp_path / "data"
    monkeypatch.setenv("ITHACA_DATA_ROOT", str(root))
    monkeypatch.delenv("ITHACA_SHOW_BRANCHES", raising=False)
    _get_settings_cached.cache_clear()
    yield root
    _get_settings_cached.cache_clear()
