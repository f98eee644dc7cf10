# tests/conftest.py
"""
Shared fixtures: a registry driven by hand-advanced clocks and an event
recorder.
"""

import pytest

from sdgscript.runtime import ContextRegistry


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock(1_700_000_000.0)


@pytest.fixture
def timer():
    return FakeClock(100.0)


@pytest.fixture
def registry(clock, timer):
    reg = ContextRegistry(clock=clock, timer=timer)
    yield reg
    reg.close()


@pytest.fixture
def events(registry):
    """Every event the registry emits, in order."""
    recorded = []
    registry.subscribe(recorded.append)
    return recorded
