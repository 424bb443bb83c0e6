"""Single-slot phase timer: a room owns at most one running timer task."""
from __future__ import annotations
import asyncio
from enum import Enum
from typing import Coroutine, Optional

from diamonds.game.game_state import GamePhase


def current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class TimerKind(Enum):
    COUNTDOWN = "countdown"
    ROUND = "round"
    NEXT_ROUND = "next_round"


# Phase in which each timer kind may run
TIMER_PHASES = {
    TimerKind.COUNTDOWN: GamePhase.COUNTDOWN,
    TimerKind.ROUND: GamePhase.PLAYING,
    TimerKind.NEXT_ROUND: GamePhase.PLAYING,
}


class PhaseTimer:
    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None
        self._kind: Optional[TimerKind] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def kind(self) -> Optional[TimerKind]:
        return self._kind if self.active else None

    def start(self, kind: TimerKind, phase: GamePhase, coro: Coroutine) -> asyncio.Task:
        """Run coro as the room's timer. Requires an empty slot and a matching phase."""
        if self.active:
            coro.close()
            raise RuntimeError(f"cannot start {kind.value} timer: {self._kind.value} timer still active")
        if TIMER_PHASES[kind] is not phase:
            coro.close()
            raise RuntimeError(f"{kind.value} timer not allowed in phase {phase.value}")
        self._task = asyncio.create_task(coro)
        self._kind = kind
        return self._task

    def detach(self) -> None:
        """Forget the current task without cancelling it (called by the timer itself)."""
        self._task = None
        self._kind = None

    def cancel(self, kind: Optional[TimerKind] = None) -> bool:
        """Cancel the running timer, optionally only if it is of the given kind."""
        if not self.active or (kind is not None and self._kind is not kind):
            return False
        task = self._task
        self.detach()
        # A timer handing over to the next phase must not cancel itself
        if task is not current_task():
            task.cancel()
        return True
