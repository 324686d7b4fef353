from ralph.engine.archive import ensure_progress_log, reconcile_branch, reset_progress_log
from ralph.engine.cancellation import CancellationToken, InterruptListener
from ralph.engine.loop import IterationLoop, RunOutcome, RunRequest, RunSummary, execute
from ralph.engine.process import IterationResult, ProcessSupervisor, run_iteration
from ralph.engine.streams import (
    COMPLETION_MARKER,
    LineKind,
    StreamLine,
    StreamMultiplexer,
    StreamResult,
    classify_line,
)
from ralph.engine.tools import ToolCommand, resolve_tool

__all__ = [
    "COMPLETION_MARKER",
    "CancellationToken",
    "InterruptListener",
    "IterationLoop",
    "IterationResult",
    "LineKind",
    "ProcessSupervisor",
    "RunOutcome",
    "RunRequest",
    "RunSummary",
    "StreamLine",
    "StreamMultiplexer",
    "StreamResult",
    "ToolCommand",
    "classify_line",
    "ensure_progress_log",
    "execute",
    "reconcile_branch",
    "reset_progress_log",
    "resolve_tool",
    "run_iteration",
]
