"""Search ranking for repository names.

Three match classes, highest first, each scored against the lowercased name:

- prefix:      ``300 + 2 * len(query) - len(name)``
- substring:   ``200 + len(query) - len(name)``
- subsequence: ``100 + len(query) - len(name)``

Names matching none of them are dropped.  Ties fall back to the most recently
opened repository (never-opened last), then to case-insensitive name order.

Subsequence matches are not weighted for contiguity or position, so a
scattered match scores the same as a tight one of equal length.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from ithaca.index.models.repo import Repo

PREFIX_BASE = 300
SUBSTRING_BASE = 200
SUBSEQUENCE_BASE = 100


def is_subsequence(query: str, text: str) -> bool:
    """True when every character of *query* appears in *text*, in order."""
    chars = iter(text)
    return all(ch in chars for ch in query)


def score(name: str, query: str) -> int | None:
    """Score a lowercased *name* against a lowercased, trimmed *query*."""
    if name.startswith(query):
        return PREFIX_BASE + 2 * len(query) - len(name)
    if query in name:
        return SUBSTRING_BASE + len(query) - len(name)
    if is_subsequence(query, name):
        return SUBSEQUENCE_BASE + len(query) - len(name)
    return None


def _recency(opened: datetime | None) -> tuple[int, float]:
    # Sorts ascending: opened repos first, most recent first.
    if opened is None:
        return (1, 0.0)
    return (0, -opened.timestamp())


def rank(repos: Sequence[Repo], query: str) -> list[Repo]:
    """Filter and order *repos* by how well their names match *query*.

    An empty (or whitespace-only) query returns the input unchanged.
    """
    trimmed = query.strip()
    if not trimmed:
        return list(repos)

    lowered = trimmed.lower()
    scored: list[tuple[int, Repo]] = []
    for repo in repos:
        value = score(repo.name.lower(), lowered)
        if value is not None:
            scored.append((value, repo))

    scored.sort(key=lambda item: (-item[0], _recency(item[1].last_opened), item[1].name.lower()))
    return [repo for _, repo in scored]
