"""Delayed, cancelable actions used for disconnect grace periods."""

from __future__ import annotations

from threading import Timer
from typing import Any, Callable, Protocol


class Cancelable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Cancelable: ...


class TimerScheduler:
    """Runs each callback on its own daemon ``threading.Timer``."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Timer:
        timer = Timer(delay, callback, args=args)
        timer.name = f"GraceTimer-{getattr(callback, '__name__', 'callback')}"
        timer.daemon = True
        timer.start()
        return timer
