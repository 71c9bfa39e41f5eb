from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Protocol

from .runtime_constants import MAX_TIMER_MS, TIMER_STEP_MS, TIMER_TICK_INTERVAL_MS
from .runtime_errors import RoomError
from .runtime_types import Phase, PhaseTimer, RoomRuntime, TimerState

logger = logging.getLogger(__name__)

TickCallback = Callable[[], bool]


class TickScheduler(Protocol):
    def start(self, key: str, callback: TickCallback) -> None: ...

    def cancel(self, key: str) -> None: ...

    def cancel_all(self) -> None: ...


class AsyncioTickScheduler:
    """Recurring ticks as tasks on the running event loop.

    The callback runs synchronously between awaits, so a tick never
    interleaves with message handling. Returning ``False`` stops the ticker.
    """

    def __init__(self, interval_ms: int = TIMER_TICK_INTERVAL_MS) -> None:
        self.interval_s = max(0.05, interval_ms / 1000)
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def start(self, key: str, callback: TickCallback) -> None:
        self.cancel(key)

        async def runner() -> None:
            while True:
                try:
                    await asyncio.sleep(self.interval_s)
                except asyncio.CancelledError:
                    return
                try:
                    keep_going = callback()
                except Exception:
                    logger.exception("Timer tick failed for %s", key)
                    keep_going = False
                if not keep_going:
                    break
            if self._tasks.get(key) is asyncio.current_task():
                self._tasks.pop(key, None)

        self._tasks[key] = asyncio.get_running_loop().create_task(runner(), name=f"timer:{key}")

    def cancel(self, key: str) -> None:
        task = self._tasks.pop(key, None)
        if task and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)


def validate_duration(value: Any) -> int:
    if isinstance(value, bool):
        raise RoomError("INVALID_TIMER_DURATION")
    try:
        duration_ms = int(value)
    except (TypeError, ValueError):
        raise RoomError("INVALID_TIMER_DURATION") from None
    if duration_ms <= 0 or duration_ms > MAX_TIMER_MS:
        raise RoomError("INVALID_TIMER_DURATION")
    return duration_ms


def timer_state(room: RoomRuntime) -> TimerState:
    timer = room.timer
    if timer is None:
        return "idle"
    if timer.running:
        return "paused" if room.paused else "running"
    return "expired"


def build_timer_payload(room: RoomRuntime) -> dict[str, Any] | None:
    timer = room.timer
    if timer is None:
        return None
    return {
        "phase": timer.phase,
        "remainingMs": timer.remaining_ms,
        "running": timer.running,
        "state": timer_state(room),
    }


def start_phase_timer(room: RoomRuntime, duration_ms: int, phase: Phase) -> PhaseTimer:
    room.timer = PhaseTimer(phase=phase, remaining_ms=max(0, duration_ms), running=duration_ms > 0)
    return room.timer


def advance_phase_timer(room: RoomRuntime, step_ms: int = TIMER_STEP_MS) -> bool:
    """Apply one tick. Returns ``True`` when the timer state changed."""
    timer = room.timer
    if timer is None or not timer.running:
        return False
    if room.paused:
        return False

    timer.remaining_ms = max(0, timer.remaining_ms - step_ms)
    if timer.remaining_ms == 0:
        timer.running = False
    return True
