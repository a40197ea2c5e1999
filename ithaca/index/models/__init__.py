"""Data models for the repository index."""

from ithaca.index.models.enums import ChangeKind, OpenTarget
from ithaca.index.models.events import StoreChange, StoreSnapshot
from ithaca.index.models.repo import (
    Repo,
    RepoIndex,
    RootsConfig,
    WorkspaceRoot,
    name_for_path,
    normalize_path,
    stable_id,
)

__all__ = [
    # Enums
    "ChangeKind",
    "OpenTarget",
    # Repo
    "Repo",
    "RepoIndex",
    "RootsConfig",
    "WorkspaceRoot",
    "name_for_path",
    "normalize_path",
    "stable_id",
    # Events
    "StoreChange",
    "StoreSnapshot",
]
