from __future__ import annotations

import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ralph.config import DEFAULT_MAX_ITERATIONS, RalphConfig
from ralph.engine.archive import PROGRESS_FILE, ensure_progress_log, reconcile_branch
from ralph.engine.cancellation import CancellationToken, InterruptListener
from ralph.engine.process import IterationResult, ProcessSupervisor
from ralph.engine.streams import LineSink
from ralph.engine.tools import AvailabilityCheck, ToolCommand, resolve_tool
from ralph.errors import ConfigError, TaskListError
from ralph.prd import Prd

EventHook = Callable[[dict[str, Any]], None]
IterationRunner = Callable[[ToolCommand, Path, CancellationToken], Awaitable[IterationResult]]


class RunOutcome(str, Enum):
    ALREADY_COMPLETE = "already_complete"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class RunRequest:
    tool: str
    max_iterations: int | None
    task_list_path: Path


@dataclass(slots=True)
class RunSummary:
    outcome: RunOutcome
    iterations_attempted: int
    max_iterations: int
    completed_stories: int
    total_stories: int
    tool: str | None = None
    counts_refreshed: bool = True


class IterationLoop:
    """Runs the agent repeatedly until completion, interruption or budget exhaustion."""

    def __init__(
        self,
        config: RalphConfig | None = None,
        *,
        token: CancellationToken | None = None,
        sink: LineSink | None = None,
        event_hook: EventHook | None = None,
        is_available: AvailabilityCheck | None = None,
        prompt: str | None = None,
        iteration_runner: IterationRunner | None = None,
        handle_signals: bool = True,
    ) -> None:
        self.config = config or RalphConfig.default()
        self.token = token or CancellationToken()
        self.event_hook = event_hook
        self.is_available = is_available
        self.handle_signals = handle_signals
        if iteration_runner is None:
            supervisor = ProcessSupervisor(prompt=prompt, sink=sink, event_hook=event_hook)
            iteration_runner = supervisor.run_iteration
        self.iteration_runner = iteration_runner

    def _emit(self, event: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(event)

    def _max_iterations(self, request: RunRequest) -> int:
        value = request.max_iterations
        if value is None:
            value = self.config.max_iterations
        if value is None:
            value = DEFAULT_MAX_ITERATIONS
        if value < 1:
            raise ConfigError("max_iterations must be a positive integer")
        return value

    def _final_counts(self, request: RunRequest, prd: Prd) -> tuple[int, int, bool]:
        # The agent may have rewritten or broken the task list; keep the
        # pre-run counts rather than failing a run that already happened.
        try:
            final = Prd.from_file(request.task_list_path)
        except TaskListError as exc:
            self._emit({"event": "summary_reload_failed", "error": str(exc)})
            return prd.completed_stories, prd.total_stories, False
        return final.completed_stories, final.total_stories, True

    async def execute(self, request: RunRequest) -> RunSummary:
        task_list_path = Path(request.task_list_path)
        run_dir = task_list_path.parent
        if not run_dir.is_dir():
            raise ConfigError(
                f"Ralph directory does not exist: {run_dir}. Run 'ralph init' to initialize."
            )
        prd = Prd.from_file(task_list_path)
        max_iterations = self._max_iterations(request)
        self._emit(
            {
                "event": "task_list_loaded",
                "project": prd.project,
                "branch": prd.branch_name,
                "completed_stories": prd.completed_stories,
                "total_stories": prd.total_stories,
            }
        )

        if prd.pending_stories == 0:
            return RunSummary(
                outcome=RunOutcome.ALREADY_COMPLETE,
                iterations_attempted=0,
                max_iterations=max_iterations,
                completed_stories=prd.completed_stories,
                total_stories=prd.total_stories,
            )

        command = resolve_tool(
            request.tool, self.config.default_tool, is_available=self.is_available
        )
        self._emit(
            {
                "event": "run_start",
                "tool": command.name,
                "max_iterations": max_iterations,
                "branch": prd.branch_name,
            }
        )

        reconcile_branch(
            run_dir,
            prd.branch_name,
            task_list_name=task_list_path.name,
            auto_archive=self.config.auto_archive is not False,
            event_hook=self.event_hook,
        )
        progress_file = run_dir / PROGRESS_FILE
        if ensure_progress_log(progress_file):
            self._emit({"event": "progress_log_created", "path": str(progress_file)})

        listener: contextlib.AbstractContextManager[Any] = contextlib.nullcontext()
        if self.handle_signals:
            listener = InterruptListener(self.token, event_hook=self.event_hook)

        with listener:
            outcome, attempted = await self._iterate(command, run_dir, max_iterations)

        completed, total, refreshed = self._final_counts(request, prd)
        return RunSummary(
            outcome=outcome,
            iterations_attempted=attempted,
            max_iterations=max_iterations,
            completed_stories=completed,
            total_stories=total,
            tool=command.name,
            counts_refreshed=refreshed,
        )

    async def _iterate(
        self, command: ToolCommand, run_dir: Path, max_iterations: int
    ) -> tuple[RunOutcome, int]:
        iteration = 1
        attempted = 0
        while True:
            if self.token.cancelled:
                return RunOutcome.INTERRUPTED, attempted

            self._emit(
                {
                    "event": "iteration_start",
                    "iteration": iteration,
                    "max_iterations": max_iterations,
                }
            )
            attempted = iteration
            result = await self.iteration_runner(command, run_dir, self.token)

            if result.cancelled or self.token.cancelled:
                return RunOutcome.INTERRUPTED, attempted
            if result.completed:
                return RunOutcome.COMPLETED, attempted
            if iteration >= max_iterations:
                return RunOutcome.EXHAUSTED, attempted
            iteration += 1


async def execute(
    tool: str,
    max_iterations: int | None,
    task_list_path: str | Path,
    *,
    config: RalphConfig | None = None,
    **options: Any,
) -> RunSummary:
    loop = IterationLoop(config, **options)
    return await loop.execute(
        RunRequest(tool=tool, max_iterations=max_iterations, task_list_path=Path(task_list_path))
    )
