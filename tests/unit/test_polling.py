"""Unit tests for devboot.core.polling."""

from __future__ import annotations

import pytest

from devboot.core.polling import Ready, TimedOut, poll_until


class _Script:
    def __init__(self, values):
        self.values = list(values)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.values.pop(0) if self.values else None


class TestPollUntil:
    def test_ready_on_first_probe(self) -> None:
        sleeps: list[float] = []
        result = poll_until(lambda: "up", max_attempts=5, interval=0.5, sleep=sleeps.append)
        assert result == Ready("up", 1)
        assert sleeps == []

    def test_ready_after_retries(self) -> None:
        sleeps: list[float] = []
        probe = _Script([None, None, "up"])
        result = poll_until(probe, max_attempts=5, interval=0.25, sleep=sleeps.append)
        assert result == Ready("up", 3)
        assert sleeps == [0.25, 0.25]

    def test_timeout_makes_exactly_max_attempts(self) -> None:
        sleeps: list[float] = []
        probe = _Script([])
        result = poll_until(probe, max_attempts=30, interval=0.5, sleep=sleeps.append)
        assert result == TimedOut(30)
        assert probe.calls == 30
        # no sleep after the last probe
        assert len(sleeps) == 29
        assert sum(sleeps) == pytest.approx(14.5)

    def test_falsy_non_none_counts_as_ready(self) -> None:
        result = poll_until(lambda: 0, max_attempts=3, sleep=lambda _: None)
        assert result == Ready(0, 1)

    def test_single_attempt(self) -> None:
        sleeps: list[float] = []
        assert poll_until(lambda: None, max_attempts=1, sleep=sleeps.append) == TimedOut(1)
        assert sleeps == []

    @pytest.mark.parametrize("attempts", [0, -1])
    def test_invalid_attempts(self, attempts: int) -> None:
        with pytest.raises(ValueError):
            poll_until(lambda: None, max_attempts=attempts)

    def test_negative_interval(self) -> None:
        with pytest.raises(ValueError):
            poll_until(lambda: None, interval=-1)


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class TestDeadline:
    def test_slow_probes_stop_at_deadline(self) -> None:
        clock = _Clock()

        def probe():
            clock.now += 4.0
            return None

        result = poll_until(
            probe, max_attempts=30, interval=0.5, sleep=clock.sleep, deadline=15.0, clock=clock
        )
        assert isinstance(result, TimedOut)
        assert result.attempts < 30
        # the last probe may start just before the deadline and run its own length
        assert clock.now <= 15.0 + 4.0

    def test_sleep_never_passes_deadline(self) -> None:
        clock = _Clock()
        sleeps: list[float] = []

        def sleep(seconds: float) -> None:
            sleeps.append(seconds)
            clock.sleep(seconds)

        def probe():
            clock.now += 0.8
            return None

        poll_until(probe, max_attempts=30, interval=0.5, sleep=sleep, deadline=2.0, clock=clock)
        assert clock.now <= 2.0 + 0.8
        assert sleeps[-1] <= 0.5

    def test_fast_probes_use_full_attempt_budget(self) -> None:
        clock = _Clock()
        result = poll_until(
            lambda: None,
            max_attempts=30,
            interval=0.5,
            sleep=clock.sleep,
            deadline=15.0,
            clock=clock,
        )
        assert result == TimedOut(30)
        assert clock.now == pytest.approx(14.5)

    def test_ready_before_deadline(self) -> None:
        clock = _Clock()
        probe = _Script([None, "up"])
        result = poll_until(probe, sleep=clock.sleep, deadline=15.0, clock=clock)
        assert result == Ready("up", 2)
