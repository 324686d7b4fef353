from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Literal

import click

from ralph.engine.cancellation import CancellationToken

COMPLETION_MARKER = "<promise>COMPLETE</promise>"

StreamName = Literal["stdout", "stderr"]


class LineKind(str, Enum):
    COMPLETE = "complete"
    ERROR = "error"
    WARNING = "warning"
    SUCCESS = "success"
    PLAIN = "plain"


@dataclass(frozen=True, slots=True)
class StreamLine:
    stream: StreamName
    text: str
    kind: LineKind = LineKind.PLAIN


@dataclass(slots=True)
class StreamResult:
    completed: bool = False
    cancelled: bool = False
    stdout_lines: int = 0
    stderr_lines: int = 0


LineSink = Callable[[StreamLine], None]

_LINE_STYLES: dict[LineKind, dict[str, object]] = {
    LineKind.COMPLETE: {"fg": "bright_green", "bold": True},
    LineKind.ERROR: {"fg": "red"},
    LineKind.WARNING: {"fg": "yellow"},
    LineKind.SUCCESS: {"fg": "green"},
}


def classify_line(text: str) -> LineKind:
    if COMPLETION_MARKER in text:
        return LineKind.COMPLETE
    lowered = text.lower()
    if "error" in lowered:
        return LineKind.ERROR
    if "warning" in lowered:
        return LineKind.WARNING
    if "success" in lowered or "✓" in text:
        return LineKind.SUCCESS
    return LineKind.PLAIN


def render_line(line: StreamLine) -> str:
    if line.stream == "stderr":
        return click.style(line.text, fg="red")
    style = _LINE_STYLES.get(line.kind)
    if style is None:
        return line.text
    return click.style(line.text, **style)  # type: ignore[arg-type]


def echo_line(line: StreamLine) -> None:
    click.echo(render_line(line), err=line.stream == "stderr")


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


class StreamMultiplexer:
    """Forwards stdout/stderr lines as they arrive and watches for the marker.

    Each pipe has its own reader task feeding one queue, so a chatty stream
    cannot starve the other. The consumer races the queue against the
    cancellation token.
    """

    def __init__(
        self,
        stdout: asyncio.StreamReader,
        stderr: asyncio.StreamReader,
        token: CancellationToken,
        sink: LineSink | None = None,
    ) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.token = token
        self.sink = sink or echo_line
        self._queue: asyncio.Queue[StreamLine | None] = asyncio.Queue()

    async def _pump(self, reader: asyncio.StreamReader, stream: StreamName) -> None:
        overrun = False
        try:
            while True:
                try:
                    raw = await reader.readuntil(b"\n")
                except asyncio.IncompleteReadError as exc:
                    raw = exc.partial
                except asyncio.LimitOverrunError as exc:
                    # Forward the buffered part of an overlong line as its own
                    # line and keep reading the rest of the stream.
                    raw = await reader.read(exc.consumed)
                    overrun = True
                    await self._put(stream, raw)
                    continue
                if not raw:
                    break
                if overrun and raw in (b"\n", b"\r\n"):
                    overrun = False
                    continue
                overrun = False
                await self._put(stream, raw)
        finally:
            self._queue.put_nowait(None)

    async def _put(self, stream: StreamName, raw: bytes) -> None:
        text = _decode(raw)
        await self._queue.put(StreamLine(stream=stream, text=text, kind=classify_line(text)))

    def _handle(self, line: StreamLine, result: StreamResult) -> None:
        if line.stream == "stdout":
            result.stdout_lines += 1
            if COMPLETION_MARKER in line.text:
                result.completed = True
        else:
            result.stderr_lines += 1
        self.sink(line)

    async def consume(self) -> StreamResult:
        result = StreamResult()
        pumps = [
            asyncio.create_task(self._pump(self.stdout, "stdout")),
            asyncio.create_task(self._pump(self.stderr, "stderr")),
        ]
        cancel_waiter = asyncio.create_task(self.token.wait())
        open_streams = len(pumps)
        try:
            while open_streams:
                if self.token.cancelled:
                    result.cancelled = True
                    break
                getter = asyncio.create_task(self._queue.get())
                await asyncio.wait({getter, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if not getter.done():
                    getter.cancel()
                    result.cancelled = True
                    break
                line = getter.result()
                if line is None:
                    open_streams -= 1
                    continue
                self._handle(line, result)
        finally:
            cancel_waiter.cancel()
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(cancel_waiter, *pumps, return_exceptions=True)
        return result
