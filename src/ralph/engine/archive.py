from __future__ import annotations

import shutil
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ralph.errors import ArchiveError

LAST_BRANCH_FILE = ".last-branch"
PROGRESS_FILE = "progress.txt"
ARCHIVE_DIR = "archive"
DEFAULT_TASK_LIST_FILE = "prd.json"

EventHook = Callable[[dict[str, Any]], None]


def progress_header(now: datetime | None = None) -> str:
    started = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return f"# Ralph Progress Log\nStarted: {started}\n---\n"


def ensure_progress_log(path: Path, now: datetime | None = None) -> bool:
    """Write a fresh header if the progress log is missing. Returns True if created."""
    if path.exists():
        return False
    try:
        path.write_text(progress_header(now), encoding="utf-8")
    except OSError as exc:
        raise ArchiveError(f"Failed to create progress log {path}: {exc}") from exc
    return True


def reset_progress_log(path: Path, now: datetime | None = None) -> None:
    try:
        path.write_text(progress_header(now), encoding="utf-8")
    except OSError as exc:
        raise ArchiveError(f"Failed to reset progress log {path}: {exc}") from exc


def branch_tail(branch: str) -> str:
    tail = branch.strip().rsplit("/", 1)[-1]
    if tail:
        return tail
    return branch.strip().strip("/").replace("/", "-") or "branch"


def read_last_branch(run_dir: Path) -> str | None:
    record = run_dir / LAST_BRANCH_FILE
    if not record.exists():
        return None
    try:
        value = record.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as exc:
        raise ArchiveError(f"Failed to read {record}: {exc}") from exc
    return value or None


def _unique_archive_dir(archive_root: Path, folder_name: str) -> Path:
    candidate = archive_root / folder_name
    suffix = 2
    while candidate.exists():
        candidate = archive_root / f"{folder_name}-{suffix}"
        suffix += 1
    return candidate


def reconcile_branch(
    run_dir: Path,
    current_branch: str,
    *,
    task_list_name: str = DEFAULT_TASK_LIST_FILE,
    auto_archive: bool = True,
    today: date | None = None,
    event_hook: EventHook | None = None,
) -> Path | None:
    """Archive the previous run if the task list moved to a new branch.

    The `.last-branch` record is always rewritten with `current_branch`, so
    it tracks the most recently started run. Returns the archive folder when
    one was created.
    """
    current_branch = current_branch.strip()
    last_branch = read_last_branch(run_dir)
    archive_dir: Path | None = None

    if last_branch is not None and last_branch != current_branch and auto_archive:
        day = (today or date.today()).isoformat()
        archive_dir = _unique_archive_dir(
            run_dir / ARCHIVE_DIR, f"{day}-{branch_tail(last_branch)}"
        )
        progress_file = run_dir / PROGRESS_FILE
        copied: list[str] = []
        try:
            archive_dir.mkdir(parents=True)
            for source in (run_dir / task_list_name, progress_file):
                if source.exists():
                    shutil.copyfile(source, archive_dir / source.name)
                    copied.append(source.name)
        except OSError as exc:
            raise ArchiveError(f"Failed to archive previous run to {archive_dir}: {exc}") from exc
        reset_progress_log(progress_file)
        if event_hook is not None:
            event_hook(
                {
                    "event": "archive_created",
                    "previous_branch": last_branch,
                    "branch": current_branch,
                    "path": str(archive_dir),
                    "files": copied,
                }
            )

    record = run_dir / LAST_BRANCH_FILE
    try:
        record.write_text(current_branch, encoding="utf-8")
    except OSError as exc:
        raise ArchiveError(f"Failed to write {record}: {exc}") from exc
    return archive_dir
