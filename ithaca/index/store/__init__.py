"""Index store implementations for the repository cache."""

from ithaca.index.store.base import IndexStore
from ithaca.index.store.local import LocalIndexStore

__all__ = ["IndexStore", "LocalIndexStore"]
