"""Bounded polling with a fixed attempt budget and an optional wall-clock deadline."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Ready(Generic[T]):
    state: T
    attempts: int


@dataclass(frozen=True)
class TimedOut:
    attempts: int


def poll_until(
    probe: Callable[[], T | None],
    max_attempts: int = 30,
    interval: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> Ready[T] | TimedOut:
    """
    Call ``probe`` until it returns something other than None.

    At most ``max_attempts`` probes are made with ``interval`` seconds
    between them; there is no sleep after the final probe.

    ``deadline`` is an absolute time on ``clock``. Once it has passed no
    further probe is made, and a sleep never runs past it. Probes that
    block are expected to bound themselves by the remaining time.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if interval < 0:
        raise ValueError("interval must not be negative")

    for attempt in range(1, max_attempts + 1):
        state = probe()
        if state is not None:
            return Ready(state, attempt)
        if attempt == max_attempts:
            break
        if deadline is None:
            sleep(interval)
            continue
        remaining = deadline - clock()
        if remaining <= 0:
            return TimedOut(attempt)
        sleep(min(interval, remaining))
        if clock() >= deadline:
            return TimedOut(attempt)
    return TimedOut(max_attempts)
