from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable
from types import FrameType
from typing import Any

EventHook = Callable[[dict[str, Any]], None]


class CancellationToken:
    """One-way running -> cancelled flag shared by the run's tasks.

    Must be cancelled from the event loop thread; `InterruptListener`
    guarantees that for signal-driven cancellation.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def running(self) -> bool:
        return not self._event.is_set()

    def cancel(self) -> bool:
        if self._event.is_set():
            return False
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()


class InterruptListener:
    """Cancels a token on SIGINT for as long as the listener is installed.

    Only the first signal has an effect; later ones are ignored rather than
    escalating to a forced kill.
    """

    def __init__(
        self,
        token: CancellationToken,
        *,
        signals: tuple[signal.Signals, ...] = (signal.SIGINT,),
        event_hook: EventHook | None = None,
    ) -> None:
        self.token = token
        self.signals = signals
        self.event_hook = event_hook
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_handlers: list[signal.Signals] = []
        self._previous_handlers: dict[signal.Signals, Any] = {}

    def _on_signal(self, signum: int) -> None:
        if self.token.cancel() and self.event_hook is not None:
            self.event_hook({"event": "interrupt_received", "signal": signal.Signals(signum).name})

    def _fallback_handler(self, signum: int, frame: FrameType | None) -> None:
        _ = frame
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._on_signal, signum)

    def install(self) -> None:
        self._loop = asyncio.get_running_loop()
        for sig in self.signals:
            self._previous_handlers[sig] = signal.getsignal(sig)
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
                self._loop_handlers.append(sig)
            except NotImplementedError:
                signal.signal(sig, self._fallback_handler)

    def remove(self) -> None:
        if self._loop is not None:
            for sig in self._loop_handlers:
                self._loop.remove_signal_handler(sig)
        for sig, previous in self._previous_handlers.items():
            if previous is not None:
                signal.signal(sig, previous)
        self._loop_handlers.clear()
        self._previous_handlers.clear()
        self._loop = None

    def __enter__(self) -> InterruptListener:
        self.install()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.remove()
