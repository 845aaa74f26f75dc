"""Logical clock supplied by the host. The engine reads it once per invocation."""

from __future__ import annotations

from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current tick; never decreases."""
        ...


class ManualClock:
    """A host-driven tick counter (slots, block heights, test time)."""

    def __init__(self, tick: int = 0) -> None:
        if tick < 0:
            raise ValueError("tick must be non-negative")
        self._tick = tick

    def now(self) -> int:
        return self._tick

    def advance(self, ticks: int = 1) -> int:
        if ticks < 0:
            raise ValueError("the logical clock cannot move backwards")
        self._tick += ticks
        return self._tick

    def set(self, tick: int) -> int:
        if tick < self._tick:
            raise ValueError(f"tick {tick} is before current tick {self._tick}")
        self._tick = tick
        return self._tick
