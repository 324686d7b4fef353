from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import click

from ralph import __version__, agents, skills
from ralph.config import (
    ConfigKey,
    RalphConfig,
    default_config_path,
    load_config,
    save_config,
)
from ralph.engine import IterationLoop, RunOutcome, RunRequest, RunSummary
from ralph.errors import RalphError

DEFAULT_PRD_PATH = "./ralph/prd.json"
RULE = "================="


def _resolve_config_path(config_value: str | None) -> Path:
    if not config_value:
        return default_config_path()
    return Path(config_value).expanduser().resolve()


def _load(config_path: Path) -> RalphConfig:
    try:
        return load_config(config_path)
    except RalphError as exc:
        raise click.ClickException(str(exc)) from exc


def _report_event(event: dict[str, Any]) -> None:
    name = event.get("event")
    if name == "task_list_loaded":
        click.echo(click.style("Ralph Task Runner", fg="cyan", bold=True))
        click.echo(click.style(RULE, fg="cyan"))
        click.echo()
        click.echo(f"Project: {click.style(event['project'], bold=True)}")
        click.echo(f"Branch: {click.style(event['branch'], fg='cyan')}")
        click.echo(
            f"Progress: {click.style(str(event['completed_stories']), fg='green')}"
            f"/{event['total_stories']} stories completed"
        )
        click.echo()
    elif name == "run_start":
        click.echo(f"Tool: {click.style(event['tool'], fg='cyan')}")
    elif name == "iteration_start":
        click.echo()
        iteration = click.style("Iteration", bold=True)
        click.echo(f"{iteration} {event['iteration']} / {event['max_iterations']}")
        click.echo(click.style("-" * 40, dim=True))
    elif name == "archive_created":
        click.echo(
            f"Archiving previous run: {click.style(event['previous_branch'], fg='cyan')}"
            f" -> {event['path']}"
        )
    elif name == "progress_log_created":
        click.echo(f"Created progress log: {event['path']}")
    elif name == "completion_detected":
        click.echo()
        click.echo(click.style("✓ Agent signaled completion!", fg="green", bold=True))
    elif name == "agent_exit_nonzero":
        click.echo(
            click.style(
                f"Warning: {event['command']} exited with status: {event['exit_code']}",
                fg="yellow",
            ),
            err=True,
        )
    elif name == "interrupt_received":
        click.echo()
        click.echo(click.style("Received interrupt signal, stopping...", fg="yellow"))
    elif name == "summary_reload_failed":
        click.echo(
            click.style(
                f"Could not reload the PRD after the run ({event['error']}); "
                "showing counts from before the run.",
                dim=True,
            ),
            err=True,
        )


def _echo_summary(summary: RunSummary) -> None:
    if summary.outcome is RunOutcome.ALREADY_COMPLETE:
        click.echo(click.style("All stories are complete!", fg="green", bold=True))
        return

    click.echo()
    click.echo(click.style(RULE, fg="cyan"))
    click.echo(click.style("Run Summary", fg="cyan", bold=True))
    click.echo(click.style(RULE, fg="cyan"))
    click.echo(f"Iterations completed: {summary.iterations_attempted}/{summary.max_iterations}")
    click.echo(f"Stories completed: {summary.completed_stories}/{summary.total_stories}")
    if summary.outcome is RunOutcome.COMPLETED:
        click.echo(click.style("All stories complete", fg="green"))
    elif summary.outcome is RunOutcome.INTERRUPTED:
        click.echo(click.style("Run interrupted by user", fg="yellow"))
    elif summary.outcome is RunOutcome.EXHAUSTED:
        click.echo(click.style("Maximum iterations reached", fg="yellow"))


@click.group()
@click.version_option(__version__, prog_name="ralph")
def cli() -> None:
    """Ralph CLI - AI Agent aggregation tool."""


@cli.command("run")
@click.option(
    "--tool",
    default="auto",
    show_default=True,
    help="AI tool to use (amp/claude/codebuddy/auto) or a custom command.",
)
@click.option("--max-iterations", type=click.IntRange(min=1), default=None)
@click.option("--prd", "prd_value", default=DEFAULT_PRD_PATH, show_default=True)
@click.option("--config", "config_value", default=None)
def run_command(
    tool: str, max_iterations: int | None, prd_value: str, config_value: str | None
) -> None:
    config = _load(_resolve_config_path(config_value))
    prd_path = Path(prd_value)
    loop = IterationLoop(config, event_hook=_report_event)

    try:
        summary = asyncio.run(
            loop.execute(
                RunRequest(tool=tool, max_iterations=max_iterations, task_list_path=prd_path)
            )
        )
    except RalphError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_summary(summary)


@cli.command("config")
@click.option("--get", "get_key", default=None, help="Get a specific config value.")
@click.option("--set", "set_pair", nargs=2, default=None, metavar="KEY VALUE")
@click.option("--config", "config_value", default=None)
def config_command(
    get_key: str | None, set_pair: tuple[str, str] | None, config_value: str | None
) -> None:
    config_path = _resolve_config_path(config_value)
    config = _load(config_path)

    try:
        if get_key:
            key = ConfigKey.parse(get_key)
            value = config.get(key)
            if value is None:
                click.echo(f"{key.value} is not set")
            else:
                click.echo(f"{key.value} = {value}")
            return

        if set_pair:
            raw_key, value = set_pair
            key = ConfigKey.parse(raw_key)
            config.set(key, value)
            save_config(config_path, config)
            click.echo(f"{click.style('✓', fg='green')} Set {key.value} = {config.get(key)}")
            return
    except RalphError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(click.style("Ralph Configuration", fg="cyan", bold=True))
    click.echo(click.style("===================", fg="cyan"))
    click.echo()
    click.echo(click.style("Config file location:", bold=True))
    click.echo(f"  {config_path}")
    click.echo()
    click.echo(click.style("Current settings:", bold=True))
    click.echo()
    for key in ConfigKey:
        value = config.get(key)
        if value is not None:
            rendered = click.style(value, fg="green")
        else:
            rendered = click.style("not set", dim=True)
        click.echo(f"  {click.style(key.value, bold=True)} = {rendered}")
        click.echo(f"    {click.style(key.description, dim=True)}")
        click.echo()


@cli.command("detect")
def detect_command() -> None:
    click.echo("Detecting installed AI Agent CLIs...\n")
    detected = agents.detect_agents()
    click.echo("Installed Agents:")
    click.echo("-----------------")
    for agent in agents.KNOWN_AGENTS:
        if agent in detected:
            status = click.style("✓ Installed", fg="green")
        else:
            status = click.style("✗ Not found", fg="red")
        click.echo(f"  {agent.name}: {status}")
    click.echo("-----------------")
    click.echo(f"Total: {len(detected)}/{len(agents.KNOWN_AGENTS)} agents installed")


@cli.command("init")
@click.option("--tool", default=None, help="Default AI tool to store in the config.")
@click.option("--config", "config_value", default=None)
def init_command(tool: str | None, config_value: str | None) -> None:
    config_path = _resolve_config_path(config_value)
    config = _load(config_path)

    if tool:
        try:
            config.set(ConfigKey.DEFAULT_TOOL, tool)
            save_config(config_path, config)
        except RalphError as exc:
            raise click.ClickException(str(exc)) from exc
    elif not config.default_tool:
        click.echo(click.style("Warning: No default AI tool configured.", fg="yellow"))
        click.echo("Set one later with: ralph config --set default_tool <tool>")

    ralph_dir = Path("ralph")
    for directory in (ralph_dir, ralph_dir / "tasks"):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise click.ClickException(
                f"Failed to create {directory}: {exc.strerror or exc}"
            ) from exc
        click.echo(f"  {click.style('✓', fg='green')} Created {directory}")

    click.echo()
    click.echo(f"Default tool: {config.default_tool or 'auto'}")
    click.echo(f"Next: write {DEFAULT_PRD_PATH} and run `ralph run`.")


@cli.command("install")
@click.option("--agent", "agent_value", default=None, help="Agent command (amp/claude/codebuddy).")
@click.option("--force", is_flag=True, help="Overwrite skill files that already exist.")
def install_command(agent_value: str | None, force: bool) -> None:
    """Install the ralph and prd skills into agent skill directories."""
    click.echo(click.style("Ralph Skill Installation", fg="cyan", bold=True))
    click.echo(click.style("========================", fg="cyan"))
    click.echo()

    if agent_value:
        agent = agents.agent_for_command(agent_value.strip().lower())
        if agent is None:
            known = ", ".join(item.command for item in agents.KNOWN_AGENTS)
            raise click.ClickException(f"Unknown agent: {agent_value}. Choose one of: {known}")
        targets = [agent]
    else:
        targets = agents.detect_agents()
        if not targets:
            click.echo(click.style("No AI Agent CLIs detected!", fg="yellow"))
            click.echo("Please install Amp, Claude Code, or CodeBuddy first.")
            return

    for agent in targets:
        click.echo(f"{click.style(agent.name, bold=True)}: {skills.global_skills_dir(agent)}")
        try:
            installs = skills.install_skills(agent, force=force)
        except RalphError as exc:
            raise click.ClickException(str(exc)) from exc
        for install in installs:
            label = f"{install.skill}/{skills.SKILL_FILE_NAME}"
            if install.written:
                click.echo(f"  {click.style('✓', fg='green')} Installed {label}")
            else:
                click.echo(f"  Skipping {label} (already exists, use --force to overwrite)")
        click.echo()

    click.echo(f"Next: run {click.style('ralph init', fg='cyan')} to start a new Ralph project.")
