from __future__ import annotations

import subprocess
from dataclasses import dataclass

PROBE_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class Agent:
    name: str
    command: str
    args: tuple[str, ...] = ()


AMP = Agent("Amp", "amp", ("--dangerously-allow-all",))
CLAUDE = Agent("Claude Code", "claude", ("--dangerously-skip-permissions", "--print"))
CODEBUDDY = Agent(
    "CodeBuddy",
    "codebuddy",
    ("-p", "--dangerously-skip-permissions", "--tools", "default"),
)

# Auto-detection priority order.
KNOWN_AGENTS: tuple[Agent, ...] = (AMP, CLAUDE, CODEBUDDY)


def agent_for_command(command: str) -> Agent | None:
    for agent in KNOWN_AGENTS:
        if agent.command == command:
            return agent
    return None


def is_command_available(executable: str) -> bool:
    """Return True if `<executable> --version` can be launched."""
    if not executable.strip():
        return False
    try:
        subprocess.run(
            [executable, "--version"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=PROBE_TIMEOUT_SECONDS,
        )
    except subprocess.TimeoutExpired:
        return True
    except OSError:
        return False
    return True


def detect_agents() -> list[Agent]:
    return [agent for agent in KNOWN_AGENTS if is_command_available(agent.command)]
