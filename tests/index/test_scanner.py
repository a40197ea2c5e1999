"""Unit tests for the filesystem scanner (uses a temporary directory tree)."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from ithaca.index import scanner
from ithaca.index.access import AccessDeniedError
from ithaca.index.models.repo import Repo, WorkspaceRoot
from ithaca.index.scanner import (
    DEFAULT_IGNORED_DIRECTORIES,
    is_repository,
    resolve_git_dir,
    scan_workspace_roots,
)

MakeRepo = Callable[..., Path]


def _paths(repos: list[Repo]) -> set[str]:
    return {repo.path for repo in repos}


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------


def test_git_directory_is_marker(tmp_path: Path, make_repo: MakeRepo) -> None:
    repo = make_repo(tmp_path / "alpha")
    assert is_repository(repo)
    assert not is_repository(tmp_path)


def test_gitdir_pointer_file_is_marker(tmp_path: Path) -> None:
    (tmp_path / "store" / "wt.git").mkdir(parents=True)
    worktree = tmp_path / "wt"
    worktree.mkdir()
    (worktree / ".git").write_text("gitdir: ../store/wt.git\n", encoding="utf-8")

    assert resolve_git_dir(worktree) == tmp_path / "store" / "wt.git"
    assert is_repository(worktree)


def test_dangling_gitdir_pointer_is_not_marker(tmp_path: Path) -> None:
    worktree = tmp_path / "wt"
    worktree.mkdir()
    (worktree / ".git").write_text("gitdir: /nowhere/at/all\n", encoding="utf-8")
    assert not is_repository(worktree)


def test_git_file_without_pointer_is_not_marker(tmp_path: Path) -> None:
    (tmp_path / "odd").mkdir()
    (tmp_path / "odd" / ".git").write_text("not a pointer", encoding="utf-8")
    assert not is_repository(tmp_path / "odd")


def test_contained_pointer_must_stay_inside_repo(tmp_path: Path) -> None:
    (tmp_path / "outside.git").mkdir()
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / ".git").write_text(f"gitdir: {tmp_path / 'outside.git'}", encoding="utf-8")

    assert resolve_git_dir(repo) is not None
    assert resolve_git_dir(repo, contained=True) is None


# ---------------------------------------------------------------------------
# Walk
# ---------------------------------------------------------------------------


def test_finds_repositories_with_provenance(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "alpha")
    make_repo(tmp_path / "group" / "beta")
    (tmp_path / "empty" / "deeper").mkdir(parents=True)

    repos = scan_workspace_roots([str(tmp_path)])

    assert _paths(repos) == {str(tmp_path / "alpha"), str(tmp_path / "group" / "beta")}
    beta = next(r for r in repos if r.name == "beta")
    assert beta.root_path == str(tmp_path)
    assert beta.root_name == tmp_path.name


def test_root_that_is_a_repository_is_reported_alone(tmp_path: Path, make_repo: MakeRepo) -> None:
    root = make_repo(tmp_path / "mono")
    make_repo(root / "packages" / "inner")

    repos = scan_workspace_roots([WorkspaceRoot(path=str(root))])

    assert _paths(repos) == {str(root)}


def test_nested_repositories_are_not_reported(tmp_path: Path, make_repo: MakeRepo) -> None:
    outer = make_repo(tmp_path / "a")
    make_repo(outer / "sub")

    repos = scan_workspace_roots([str(tmp_path)])

    assert _paths(repos) == {str(outer)}


def test_ignored_directories_are_pruned(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "app")
    make_repo(tmp_path / "web" / "node_modules" / "left-pad")
    # An ignored directory that is itself a repository is never reported.
    make_repo(tmp_path / "build")

    repos = scan_workspace_roots([str(tmp_path)], DEFAULT_IGNORED_DIRECTORIES)

    assert _paths(repos) == {str(tmp_path / "app")}


def test_custom_ignore_set(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "vendor" / "lib")
    make_repo(tmp_path / "node_modules" / "pkg")

    repos = scan_workspace_roots([str(tmp_path)], {"vendor"})

    assert _paths(repos) == {str(tmp_path / "node_modules" / "pkg")}


def test_hidden_directories_are_skipped(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / ".cache" / "clone")
    make_repo(tmp_path / "visible")

    repos = scan_workspace_roots([str(tmp_path)])

    assert _paths(repos) == {str(tmp_path / "visible")}


def test_symlinked_directories_are_not_followed(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "elsewhere" / "linked")
    root = tmp_path / "root"
    root.mkdir()
    os.symlink(tmp_path / "elsewhere", root / "shortcut")

    assert scan_workspace_roots([str(root)]) == []


def test_symlink_to_repository_is_reported_under_link_path(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "elsewhere" / "linked")
    make_repo(tmp_path / "elsewhere" / "plain" / "hidden-behind")
    root = tmp_path / "root"
    root.mkdir()
    os.symlink(tmp_path / "elsewhere" / "linked", root / "linked")
    os.symlink(tmp_path / "elsewhere" / "plain", root / "plain")

    repos = scan_workspace_roots([str(root)])

    assert [r.name for r in repos] == ["linked"]
    assert repos[0].path == str(root / "linked")


def test_undecodable_directory_name_is_skipped(tmp_path: Path, make_repo: MakeRepo) -> None:
    if sys.getfilesystemencoding().lower() != "utf-8":
        pytest.skip("filesystem encoding is not UTF-8")
    make_repo(tmp_path / "good")
    bad = os.path.join(os.fsencode(tmp_path), b"caf\xe9")
    try:
        os.makedirs(os.path.join(bad, b".git"))
    except OSError:
        pytest.skip("filesystem rejects non-UTF-8 names")
    make_repo(tmp_path / "other-root" / "delta")

    repos = scan_workspace_roots([str(tmp_path), str(tmp_path / "other-root")])

    assert _paths(repos) == {str(tmp_path / "good"), str(tmp_path / "other-root" / "delta")}


def test_overlapping_roots_are_deduplicated(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "group" / "shared")

    repos = scan_workspace_roots([str(tmp_path), str(tmp_path / "group")])

    assert [r.path for r in repos] == [str(tmp_path / "group" / "shared")]
    # First root wins provenance.
    assert repos[0].root_path == str(tmp_path)


def test_missing_root_is_skipped(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "real" / "alpha")
    (tmp_path / "file.txt").write_text("not a dir", encoding="utf-8")

    repos = scan_workspace_roots([str(tmp_path / "missing"), str(tmp_path / "file.txt"), str(tmp_path / "real")])

    assert _paths(repos) == {str(tmp_path / "real" / "alpha")}


def test_worktree_pointer_is_reported(tmp_path: Path) -> None:
    (tmp_path / "root" / "main" / ".git" / "worktrees" / "feature").mkdir(parents=True)
    feature = tmp_path / "root" / "feature"
    feature.mkdir()
    (feature / ".git").write_text("gitdir: ../main/.git/worktrees/feature\n", encoding="utf-8")

    repos = scan_workspace_roots([str(tmp_path / "root")])

    assert _paths(repos) == {str(tmp_path / "root" / "main"), str(feature)}


# ---------------------------------------------------------------------------
# Access grants
# ---------------------------------------------------------------------------


class RecordingResolver:
    def __init__(self, deny: set[str] | None = None) -> None:
        self.deny = deny or set()
        self.acquired: list[str] = []
        self.released: list[str] = []

    def acquire(self, root: WorkspaceRoot) -> Path:
        if root.path in self.deny:
            raise AccessDeniedError(root.path)
        self.acquired.append(root.path)
        return Path(root.path)

    def release(self, root: WorkspaceRoot, path: Path) -> None:
        self.released.append(root.path)


def test_access_grant_acquired_and_released_per_root(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "one" / "alpha")
    make_repo(tmp_path / "two" / "beta")
    resolver = RecordingResolver()
    roots = [
        WorkspaceRoot(path=str(tmp_path / "one"), bookmark="Ym9va21hcms="),
        WorkspaceRoot(path=str(tmp_path / "two")),
    ]

    repos = scan_workspace_roots(roots, access=resolver)

    assert len(repos) == 2
    assert resolver.acquired == [str(tmp_path / "one"), str(tmp_path / "two")]
    assert resolver.released == resolver.acquired


def test_denied_root_is_skipped(tmp_path: Path, make_repo: MakeRepo) -> None:
    make_repo(tmp_path / "locked" / "secret")
    make_repo(tmp_path / "open" / "public")
    resolver = RecordingResolver(deny={str(tmp_path / "locked")})

    repos = scan_workspace_roots([str(tmp_path / "locked"), str(tmp_path / "open")], access=resolver)

    assert _paths(repos) == {str(tmp_path / "open" / "public")}


def test_walk_error_keeps_partial_results_and_releases_grant(
    tmp_path: Path, make_repo: MakeRepo, monkeypatch: pytest.MonkeyPatch
) -> None:
    make_repo(tmp_path / "healthy" / "gamma")
    broken = tmp_path / "broken"
    broken.mkdir()
    real_walk = scanner._walk_root

    def flaky_walk(base, root, ignored, found):
        if base == broken:
            found.append(Repo.from_path(str(broken / "partial"), root=root))
            raise OSError("device went away")
        real_walk(base, root, ignored, found)

    monkeypatch.setattr(scanner, "_walk_root", flaky_walk)
    resolver = RecordingResolver()

    repos = scan_workspace_roots([str(broken), str(tmp_path / "healthy")], access=resolver)

    assert _paths(repos) == {str(broken / "partial"), str(tmp_path / "healthy" / "gamma")}
    assert resolver.released == [str(broken), str(tmp_path / "healthy")]
