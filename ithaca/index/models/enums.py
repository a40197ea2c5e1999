"""Shared enumerations used across the repository index."""

from __future__ import annotations

from enum import StrEnum

# -- Open target -------------------------------------------------------------


class OpenTarget(StrEnum):
    """External application a repository can be opened with."""

    VSCODE = "vscode"
    XCODE = "xcode"
    FINDER = "finder"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    OpenTarget.VSCODE: "Visual Studio Code",
    OpenTarget.XCODE: "Xcode",
    OpenTarget.FINDER: "Finder",
}


# -- Store events ------------------------------------------------------------


class ChangeKind(StrEnum):
    """What changed in a published store snapshot."""

    REPOS = "repos"
    ROOTS = "roots"
    SCAN_STARTED = "scan_started"
    SCAN_FINISHED = "scan_finished"
    PREFERENCES = "preferences"
