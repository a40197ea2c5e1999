"""Open a repository in an external application.

Each ``OpenTarget`` has two launch strategies, tried in order:

1. a direct command-line tool (``code <path>``, ``xed <path>``, ...),
2. the generic "open with named application" fallback
   (``open -a <Application> <path>``).

The first zero exit status wins.  When both fail the launcher raises
``OpenTargetError`` naming the target, which is the one failure in the index
that is surfaced to the user.
"""

from __future__ import annotations

import subprocess
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import anyio
from loguru import logger

from ithaca.index.models.enums import OpenTarget

MISSING_EXECUTABLE_STATUS = 127

CommandRunner = Callable[[Sequence[str]], Awaitable[int]]


class OpenTargetError(RuntimeError):
    """Raised when neither launch strategy could open the path."""

    def __init__(self, target: OpenTarget, path: str, *, direct_status: int, fallback_status: int) -> None:
        self.target = target
        self.path = path
        self.direct_status = direct_status
        self.fallback_status = fallback_status
        super().__init__(LAUNCH_COMMANDS[target].failure_message)


@dataclass(frozen=True)
class LaunchCommands:
    direct: tuple[str, ...]
    application: str
    failure_message: str

    def direct_command(self, path: str) -> list[str]:
        return [*self.direct, path]

    def fallback_command(self, path: str) -> list[str]:
        return ["open", "-a", self.application, path]


LAUNCH_COMMANDS: dict[OpenTarget, LaunchCommands] = {
    OpenTarget.VSCODE: LaunchCommands(
        direct=("code",),
        application="Visual Studio Code",
        failure_message="Could not open in Visual Studio Code. Install the app or enable the 'code' command.",
    ),
    OpenTarget.XCODE: LaunchCommands(
        direct=("xed",),
        application="Xcode",
        failure_message="Could not open in Xcode. Install the app or enable the 'xed' command.",
    ),
    OpenTarget.FINDER: LaunchCommands(
        direct=("open", "-R"),
        application="Finder",
        failure_message="Could not reveal in Finder.",
    ),
}


async def run_command(command: Sequence[str]) -> int:
    """Run *command* to completion and return its exit status.

    A missing or non-executable program is reported as status 127 rather
    than raised.
    """
    try:
        result = await anyio.run_process(
            list(command),
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
    except OSError as exc:
        logger.debug("Could not start {}: {}", command[0], exc)
        return MISSING_EXECUTABLE_STATUS
    if result.returncode != 0 and result.stderr:
        logger.debug("{} exited {}: {}", command[0], result.returncode, result.stderr.decode(errors="replace").strip())
    return result.returncode


class Launcher:
    """Launch external applications for repository paths."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._run = runner or run_command

    async def open(self, target: OpenTarget, path: str) -> None:
        """Open *path* with *target*.  Raises ``OpenTargetError`` on failure."""
        commands = LAUNCH_COMMANDS[target]

        direct_status = await self._run(commands.direct_command(path))
        if direct_status == 0:
            logger.info("Opened {} with {}", path, target.display_name)
            return

        fallback_status = await self._run(commands.fallback_command(path))
        if fallback_status == 0:
            logger.info("Opened {} with {} (open -a fallback)", path, target.display_name)
            return

        logger.warning(
            "Failed to open {} with {} (direct={}, fallback={})",
            path,
            target.display_name,
            direct_status,
            fallback_status,
        )
        raise OpenTargetError(target, path, direct_status=direct_status, fallback_status=fallback_status)
