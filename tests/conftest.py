"""Shared fixtures: a fake clock whose sleep advances time instantly."""

import asyncio
import datetime as dt

import pytest

NOON = dt.datetime(2025, 3, 10, 12, 0, 0, tzinfo=dt.timezone.utc).timestamp()


class FakeTime:
    """Callable clock plus an async ``sleep`` that only moves the clock forward."""

    def __init__(self, now: float = NOON):
        self.now = now
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        # arrondi : évite la dérive flottante sur les fenêtres d'une seconde
        self.now = round(self.now + seconds, 6)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def fake_time():
    return FakeTime()
