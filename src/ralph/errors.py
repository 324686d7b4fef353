from __future__ import annotations


class RalphError(RuntimeError):
    """Base class for errors that abort a Ralph command."""


class ConfigError(RalphError):
    """Raised when configuration or run inputs are invalid."""


class TaskListError(RalphError):
    """Raised when the task list cannot be loaded."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class NoAgentDetectedError(RalphError):
    """Raised when `auto` tool resolution finds no agent CLI."""


class ArchiveError(RalphError):
    """Raised when branch reconciliation fails to read or write run state."""


class SpawnError(RalphError):
    """Raised when the agent command cannot be launched."""

    def __init__(self, message: str, *, command: str | None = None) -> None:
        super().__init__(message)
        self.command = command


class SkillInstallError(RalphError):
    """Raised when a bundled skill file cannot be written."""
