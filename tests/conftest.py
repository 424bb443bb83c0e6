"""Shared fixtures for all tests."""
import asyncio
import time

import pytest

from diamonds.core.config import Settings
from diamonds.managers.room_manager import room_manager

# One tick is 10 ms; bots answer almost immediately.
FAST = dict(
    countdown_seconds=0,
    round_time_limit=500,
    next_round_delay=500,
    tick_seconds=0.01,
    ready_smoothing_delay=0.0,
    bot_start_delay=0.0,
    bot_delay_min=0.0,
    bot_delay_max=0.005,
    proxy_delay_cap=0.001,
)


def fast_settings(**overrides) -> Settings:
    return Settings(**{**FAST, **overrides})


@pytest.fixture
def settings() -> Settings:
    return fast_settings()


class EventRecorder:
    """Broadcast callback that keeps every (event_type, payload) pair."""

    def __init__(self) -> None:
        self.events = []

    async def __call__(self, room_id, event_type, payload):
        self.events.append((event_type, payload))

    def of(self, event_type):
        return [p for t, p in self.events if t == event_type]

    def types(self):
        return [t for t, _ in self.events]

    async def wait_for(self, event_type, count=1, timeout=2.0):
        """Poll until at least `count` events of the type were broadcast."""
        deadline = time.monotonic() + timeout
        while len(self.of(event_type)) < count:
            if time.monotonic() > deadline:
                raise AssertionError(
                    f"timed out waiting for {count} x {event_type}; saw {self.types()}"
                )
            await asyncio.sleep(0.002)
        return self.of(event_type)[count - 1]


async def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.002)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture(autouse=True)
def _reset_room_manager():
    yield
    room_manager.clear()
