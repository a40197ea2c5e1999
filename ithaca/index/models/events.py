"""Store change notifications.

Subscribers to ``RepoStore`` receive a ``StoreChange`` after every published
mutation.  The snapshot is immutable, so subscribers can hold on to it.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from ithaca.index.models.enums import ChangeKind
from ithaca.index.models.repo import Repo


class StoreSnapshot(BaseModel):
    """Read-only view of the store's published state."""

    model_config = ConfigDict(frozen=True)

    repos: tuple[Repo, ...] = ()
    workspace_roots: tuple[str, ...] = ()
    is_scanning: bool = False


class StoreChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    snapshot: StoreSnapshot
