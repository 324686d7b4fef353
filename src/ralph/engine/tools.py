from __future__ import annotations

import shlex
from collections.abc import Callable
from dataclasses import dataclass

from ralph import agents
from ralph.errors import ConfigError, NoAgentDetectedError

AUTO_TOOL = "auto"

AvailabilityCheck = Callable[[str], bool]


@dataclass(frozen=True, slots=True)
class ToolCommand:
    executable: str
    args: tuple[str, ...] = ()
    known: bool = False

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    @property
    def name(self) -> str:
        if self.known:
            return self.executable
        return shlex.join(self.argv)


def command_for(tool: str) -> ToolCommand:
    """Build the command for a known agent name or a custom command line."""
    agent = agents.agent_for_command(tool)
    if agent is not None:
        return ToolCommand(executable=agent.command, args=agent.args, known=True)
    try:
        parts = shlex.split(tool)
    except ValueError as exc:
        raise ConfigError(f"Invalid custom tool command {tool!r}: {exc}") from exc
    if not parts:
        raise ConfigError("Tool command must not be empty.")
    return ToolCommand(executable=parts[0], args=tuple(parts[1:]))


def resolve_tool(
    requested: str,
    configured_default: str | None,
    *,
    is_available: AvailabilityCheck | None = None,
) -> ToolCommand:
    if requested != AUTO_TOOL:
        return command_for(requested)

    check = is_available or agents.is_command_available
    if configured_default and configured_default.strip() not in {"", AUTO_TOOL}:
        candidate = command_for(configured_default.strip())
        if check(candidate.executable):
            return candidate

    for agent in agents.KNOWN_AGENTS:
        if check(agent.command):
            return ToolCommand(executable=agent.command, args=agent.args, known=True)

    raise NoAgentDetectedError(
        "No AI agent CLI detected. Please install Amp, Claude Code, or CodeBuddy."
    )
