from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_sec: float, fn: Callable[[], Any]) -> TimerHandle: ...


class ThreadScheduler:
    """Timers backed by ``threading.Timer``."""

    def call_later(self, delay_sec: float, fn: Callable[[], Any]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay_sec), fn)
        timer.daemon = True
        timer.start()
        return timer


class _TaskHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class SocketIOScheduler:
    """Timers run as Socket.IO background tasks, so they cooperate with eventlet."""

    def __init__(self, socketio) -> None:
        self.socketio = socketio

    def call_later(self, delay_sec: float, fn: Callable[[], Any]) -> TimerHandle:
        handle = _TaskHandle()

        def _runner() -> None:
            self.socketio.sleep(max(0.0, delay_sec))
            if handle.cancelled:
                return
            try:
                fn()
            except Exception:
                logger.exception("scheduled duel task failed")

        self.socketio.start_background_task(_runner)
        return handle
