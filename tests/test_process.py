import asyncio
import sys
import time
from pathlib import Path
from typing import Any

import pytest

from ralph.engine.cancellation import CancellationToken
from ralph.engine.process import ProcessSupervisor, load_agent_prompt
from ralph.engine.streams import COMPLETION_MARKER, StreamLine
from ralph.engine.tools import ToolCommand
from ralph.errors import SpawnError


def _python(script: str) -> ToolCommand:
    return ToolCommand(executable=sys.executable, args=("-c", script))


def _run(
    command: ToolCommand,
    working_dir: Path,
    *,
    prompt: str = "do the next story\n",
    token: CancellationToken | None = None,
    sink=None,
    events: list[dict[str, Any]] | None = None,
):
    supervisor = ProcessSupervisor(
        prompt=prompt,
        sink=sink or (lambda line: None),
        event_hook=(events.append if events is not None else None),
        terminate_grace_seconds=2.0,
    )
    return asyncio.run(supervisor.run_iteration(command, working_dir, token or CancellationToken()))


def test_prompt_is_written_to_stdin_and_closed(tmp_path: Path) -> None:
    forwarded: list[StreamLine] = []
    script = (
        "import sys\n"
        "data = sys.stdin.read()\n"
        "print('got:' + data.strip())\n"
        "print('bytes:' + str(len(data)))\n"
    )

    result = _run(_python(script), tmp_path, prompt="hello agent\n", sink=forwarded.append)

    assert result.completed is False
    assert result.cancelled is False
    assert result.exit_code == 0
    assert [line.text for line in forwarded] == ["got:hello agent", "bytes:12"]


def test_child_runs_in_working_directory(tmp_path: Path) -> None:
    forwarded: list[StreamLine] = []

    _run(_python("import os; print(os.getcwd())"), tmp_path, sink=forwarded.append)

    assert Path(forwarded[0].text).resolve() == tmp_path.resolve()


def test_completion_marker_is_reported(tmp_path: Path) -> None:
    events: list[dict[str, Any]] = []
    script = f"import sys; sys.stdin.read(); print('{COMPLETION_MARKER} done')"

    result = _run(_python(script), tmp_path, events=events)

    assert result.completed is True
    assert "completion_detected" in [event["event"] for event in events]


def test_nonzero_exit_is_a_warning_not_an_error(tmp_path: Path) -> None:
    events: list[dict[str, Any]] = []
    forwarded: list[StreamLine] = []
    script = "import sys; sys.stderr.write('boom\\n'); sys.exit(3)"

    result = _run(_python(script), tmp_path, events=events, sink=forwarded.append)

    assert result.exit_code == 3
    assert result.completed is False
    assert result.cancelled is False
    warning = [event for event in events if event["event"] == "agent_exit_nonzero"]
    assert warning and warning[0]["exit_code"] == 3
    assert [(line.stream, line.text) for line in forwarded] == [("stderr", "boom")]


def test_child_that_ignores_stdin_still_completes(tmp_path: Path) -> None:
    script = f"print('{COMPLETION_MARKER}')"

    result = _run(_python(script), tmp_path, prompt="x" * 200_000)

    assert result.completed is True
    assert result.cancelled is False


def test_missing_binary_raises_spawn_error(tmp_path: Path) -> None:
    command = ToolCommand(executable="definitely-not-a-real-agent-binary")

    with pytest.raises(SpawnError) as excinfo:
        _run(command, tmp_path)

    assert excinfo.value.command == "definitely-not-a-real-agent-binary"
    assert "Failed to spawn definitely-not-a-real-agent-binary" in str(excinfo.value)


def test_cancellation_terminates_running_child(tmp_path: Path) -> None:
    events: list[dict[str, Any]] = []
    token = CancellationToken()
    script = "import time\nprint('started', flush=True)\ntime.sleep(60)\n"

    def _sink(line: StreamLine) -> None:
        if line.text == "started":
            token.cancel()

    started = time.monotonic()
    result = _run(_python(script), tmp_path, token=token, sink=_sink, events=events)
    elapsed = time.monotonic() - started

    assert result.cancelled is True
    assert result.completed is False
    assert elapsed < 30
    event_names = [event["event"] for event in events]
    assert "agent_terminated" in event_names
    assert "agent_exit_nonzero" not in event_names


def test_cancellation_while_child_holds_no_output(tmp_path: Path) -> None:
    token = CancellationToken()
    script = "import os, sys, time\nos.close(1)\nos.close(2)\ntime.sleep(60)\n"

    async def _go():
        asyncio.get_running_loop().call_later(0.3, token.cancel)
        supervisor = ProcessSupervisor(
            prompt="", sink=lambda line: None, terminate_grace_seconds=2.0
        )
        return await supervisor.run_iteration(_python(script), tmp_path, token)

    result = asyncio.run(asyncio.wait_for(_go(), timeout=30))

    assert result.cancelled is True


def test_bundled_prompt_mentions_completion_marker() -> None:
    prompt = load_agent_prompt()

    assert COMPLETION_MARKER in prompt
    assert "prd.json" in prompt


def test_marker_after_line_longer_than_stream_limit(tmp_path: Path) -> None:
    forwarded: list[StreamLine] = []
    script = (
        "import sys\n"
        "sys.stdin.read()\n"
        "sys.stdout.write('x' * (6 * 1024 * 1024) + '\\n')\n"
        f"print('{COMPLETION_MARKER}')\n"
    )

    async def _go():
        supervisor = ProcessSupervisor(
            prompt="go\n", sink=forwarded.append, terminate_grace_seconds=2.0
        )
        return await supervisor.run_iteration(_python(script), tmp_path, CancellationToken())

    result = asyncio.run(asyncio.wait_for(_go(), timeout=60))

    assert result.completed is True
    assert result.exit_code == 0
    assert sum(len(line.text) for line in forwarded if line.text.startswith("x")) == 6 * 1024 * 1024


def test_large_prompt_while_child_writes_before_reading(tmp_path: Path) -> None:
    forwarded: list[StreamLine] = []
    script = (
        "import sys\n"
        "for _ in range(2000):\n"
        "    print('y' * 1000)\n"
        "sys.stdout.flush()\n"
        "data = sys.stdin.read()\n"
        "print('read', len(data))\n"
        f"print('{COMPLETION_MARKER}')\n"
    )

    async def _go():
        supervisor = ProcessSupervisor(
            prompt="p" * 1_000_000, sink=forwarded.append, terminate_grace_seconds=2.0
        )
        return await supervisor.run_iteration(_python(script), tmp_path, CancellationToken())

    result = asyncio.run(asyncio.wait_for(_go(), timeout=60))

    assert result.completed is True
    assert "read 1000000" in [line.text for line in forwarded]
