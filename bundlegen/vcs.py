"""External command results and version-control metadata lookup."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence, Tuple

from .logging import get_logger

UNKNOWN_BRANCH = "Unknown branch, not within a git repository"
UNKNOWN_REVISION = "Unknown revision, not within a git repository"

logger = get_logger("vcs")


class CommandUnavailableError(RuntimeError):
    """Raised by runners when a command is missing or exits non-zero."""


class CommandStatus(str, Enum):
    SUCCEEDED = "succeeded"
    DEFAULTED = "defaulted"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an external metadata command."""

    command: Tuple[str, ...]
    status: CommandStatus
    value: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is CommandStatus.SUCCEEDED


def default_runner(
    args: Iterable[str],
    *,
    cwd: Path,
    capture_output: bool = False,
) -> str:
    """Run ``args`` synchronously, raising ``CommandUnavailableError`` on a missing tool or non-zero exit."""
    command = list(args)
    try:
        completed = subprocess.run(
            command,
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=capture_output,
        )
    except FileNotFoundError as exc:
        raise CommandUnavailableError(f"{command[0]} is not installed") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
        raise CommandUnavailableError(f"{' '.join(command)} failed: {detail}") from exc
    return completed.stdout if capture_output else ""


def run_command(
    args: Sequence[str],
    *,
    cwd: Path,
    default: str,
    runner: Callable[..., str] | None = None,
) -> CommandResult:
    """Run a metadata command, substituting ``default`` when it cannot produce a value."""
    command = tuple(args)
    run = runner or default_runner
    try:
        output = run(command, cwd=cwd, capture_output=True)
    except CommandUnavailableError as exc:
        logger.debug("Command %s unavailable, using default %r: %s", " ".join(command), default, exc)
        return CommandResult(command, CommandStatus.DEFAULTED, default, str(exc))
    except (OSError, ValueError) as exc:
        logger.warning("Command %s failed unexpectedly, using default %r: %s", " ".join(command), default, exc)
        return CommandResult(command, CommandStatus.FAILED, default, str(exc))

    value = (output or "").strip()
    if not value:
        logger.debug("Command %s produced no output, using default %r", " ".join(command), default)
        return CommandResult(command, CommandStatus.DEFAULTED, default, "empty output")
    return CommandResult(command, CommandStatus.SUCCEEDED, value)


class GitMetadata:
    """Reads branch and revision strings for bundle preambles."""

    def __init__(self, runner: Callable[..., str] | None = None) -> None:
        self._runner = runner

    def revision(self, root: Path, default: str = UNKNOWN_REVISION) -> CommandResult:
        return run_command(
            ["git", "rev-parse", "--verify", "--short", "HEAD"],
            cwd=root,
            default=default,
            runner=self._runner,
        )

    def branch(self, root: Path, default: str = UNKNOWN_BRANCH) -> CommandResult:
        return run_command(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=root,
            default=default,
            runner=self._runner,
        )


__all__ = [
    "CommandResult",
    "CommandStatus",
    "CommandUnavailableError",
    "GitMetadata",
    "UNKNOWN_BRANCH",
    "UNKNOWN_REVISION",
    "default_runner",
    "run_command",
]
