"""Repository and workspace root data models.

A ``Repo`` is identified by a content address of its path: the same path
always yields the same ``id``, across calls and across process restarts.
That id is the merge key the store uses to carry user state (pin, last
opened, open target) from one scan to the next.

Persisted records use camelCase keys (``lastOpened``, ``isPinned``, ...).
"""

from __future__ import annotations

import hashlib
import os
from datetime import datetime
from pathlib import PurePath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ithaca.index.models.enums import OpenTarget


def stable_id(path: str) -> str:
    """Return the hex SHA-256 digest of *path* (UTF-8)."""
    return hashlib.sha256(path.encode("utf-8")).hexdigest()


def name_for_path(path: str) -> str:
    """Last path component, or the path itself for ``/``."""
    return PurePath(path).name or path


def normalize_path(path: str) -> str:
    """Absolute, user-expanded, normalised form of *path*."""
    return os.path.normpath(os.path.abspath(os.path.expanduser(path)))


# -- Repo --------------------------------------------------------------------


class Repo(BaseModel):
    """One discovered repository.

    Immutable: the store replaces records with ``model_copy(update=...)``
    rather than mutating them in place.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    path: str
    last_opened: datetime | None = None
    is_pinned: bool = False
    open_target: OpenTarget | None = None
    root_path: str | None = None
    root_name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_identity(cls, data: Any) -> Any:
        # ``id`` is always re-derived so it can never drift from ``path``.
        if not isinstance(data, dict) or not isinstance(data.get("path"), str):
            return data
        data = dict(data)
        data["id"] = stable_id(data["path"])
        if not data.get("name"):
            data["name"] = name_for_path(data["path"])
        return data

    @classmethod
    def from_path(cls, path: str, *, root: WorkspaceRoot | None = None) -> Repo:
        """Build a freshly scanned repo, recording which root produced it."""
        return cls(
            path=path,
            name=name_for_path(path),
            root_path=root.path if root else None,
            root_name=root.name if root else None,
        )


class RepoIndex(BaseModel):
    """On-disk cache document: ordered repository records."""

    repos: list[Repo] = Field(default_factory=list)


# -- Workspace roots ---------------------------------------------------------


class WorkspaceRoot(BaseModel):
    """A configured directory to scan.

    ``bookmark`` is an opaque, platform-specific access token (base64) used to
    re-acquire read access to the directory across restarts.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    bookmark: str | None = None

    @field_validator("path")
    @classmethod
    def _normalize(cls, value: str) -> str:
        if not value.strip():
            msg = "Workspace root path must not be empty"
            raise ValueError(msg)
        return normalize_path(value)

    @property
    def name(self) -> str:
        return name_for_path(self.path)


class RootsConfig(BaseModel):
    """Persisted user configuration, kept apart from the index.

    Besides the roots it holds the preferences changed at runtime.  ``None``
    means "not set here": the environment default applies.
    """

    roots: list[WorkspaceRoot] = Field(default_factory=list)
    default_open_target: OpenTarget | None = None
    show_branches: bool | None = None
