from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

from ralph.engine.cancellation import CancellationToken
from ralph.engine.streams import LineSink, StreamMultiplexer
from ralph.engine.tools import ToolCommand
from ralph.errors import SpawnError

EventHook = Callable[[dict[str, Any]], None]

# Longer output lines are forwarded in pieces of this size.
STREAM_LIMIT_BYTES = 1024 * 1024
TERMINATE_GRACE_SECONDS = 5.0


def load_agent_prompt() -> str:
    return resources.files("ralph.prompts").joinpath("prompt.md").read_text(encoding="utf-8")


@dataclass(slots=True)
class IterationResult:
    completed: bool = False
    cancelled: bool = False
    exit_code: int | None = None


class ProcessSupervisor:
    def __init__(
        self,
        *,
        prompt: str | None = None,
        sink: LineSink | None = None,
        event_hook: EventHook | None = None,
        terminate_grace_seconds: float = TERMINATE_GRACE_SECONDS,
    ) -> None:
        self.prompt = load_agent_prompt() if prompt is None else prompt
        self.sink = sink
        self.event_hook = event_hook
        self.terminate_grace_seconds = terminate_grace_seconds

    def _emit(self, event: dict[str, Any]) -> None:
        if self.event_hook is not None:
            self.event_hook(event)

    async def _spawn(self, command: ToolCommand, working_dir: Path) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *command.argv,
                cwd=str(working_dir),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT_BYTES,
            )
        except OSError as exc:
            raise SpawnError(
                f"Failed to spawn {command.name}: {exc.strerror or exc}",
                command=command.name,
            ) from exc

    async def _write_prompt(self, process: asyncio.subprocess.Process) -> None:
        stdin = process.stdin
        if stdin is None:
            return
        try:
            stdin.write(self.prompt.encode("utf-8"))
            await stdin.drain()
            stdin.close()
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            # The child stopped reading; its output and exit status still count.
            stdin.close()
            self._emit({"event": "stdin_closed_early", "pid": process.pid})

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.terminate_grace_seconds)
        except TimeoutError:
            process.kill()
            await process.wait()
        self._emit({"event": "agent_terminated", "pid": process.pid})

    @staticmethod
    async def _wait_for_exit(
        process: asyncio.subprocess.Process, token: CancellationToken
    ) -> int | None:
        """Wait for the child to exit; None if the token fired first."""
        exit_waiter = asyncio.create_task(process.wait())
        cancel_waiter = asyncio.create_task(token.wait())
        try:
            await asyncio.wait(
                {exit_waiter, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_waiter.cancel()
        if exit_waiter.done():
            return exit_waiter.result()
        exit_waiter.cancel()
        return None

    @staticmethod
    async def _finish_writer(writer: asyncio.Task[None]) -> None:
        if not writer.done():
            writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer

    async def run_iteration(
        self,
        command: ToolCommand,
        working_dir: Path,
        token: CancellationToken,
    ) -> IterationResult:
        """Run the agent once: feed the prompt, stream output, reap the process."""
        process = await self._spawn(command, working_dir)
        self._emit({"event": "agent_spawned", "command": command.name, "pid": process.pid})
        # The prompt is fed while output is drained so neither pipe can fill
        # up and block the child.
        writer = asyncio.create_task(self._write_prompt(process))
        try:
            if process.stdout is None or process.stderr is None:
                raise SpawnError(
                    f"{command.name} did not expose stdout/stderr.", command=command.name
                )
            streamed = await StreamMultiplexer(
                process.stdout, process.stderr, token, self.sink
            ).consume()
            if streamed.cancelled or token.cancelled:
                exit_code = None
            else:
                exit_code = await self._wait_for_exit(process, token)
        except BaseException:
            writer.cancel()
            await self._terminate(process)
            raise

        if exit_code is None:
            await self._terminate(process)
            await self._finish_writer(writer)
            return IterationResult(completed=False, cancelled=True, exit_code=process.returncode)
        await self._finish_writer(writer)

        if streamed.completed:
            self._emit({"event": "completion_detected", "command": command.name})
        if exit_code != 0 and token.running:
            self._emit(
                {"event": "agent_exit_nonzero", "command": command.name, "exit_code": exit_code}
            )
        return IterationResult(completed=streamed.completed, cancelled=False, exit_code=exit_code)


async def run_iteration(
    command: ToolCommand,
    working_dir: Path,
    token: CancellationToken,
    *,
    prompt: str | None = None,
    sink: LineSink | None = None,
    event_hook: EventHook | None = None,
) -> IterationResult:
    supervisor = ProcessSupervisor(prompt=prompt, sink=sink, event_hook=event_hook)
    return await supervisor.run_iteration(command, working_dir, token)
