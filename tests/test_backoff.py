"""Tests for the bounded exponential backoff loop."""

import pytest

from fleetctl.backoff import Backoff, exponential_backoff
from fleetctl.errors import BackoffExhausted


class TestBackoffDelays:
    def test_grows_by_factor_without_jitter(self) -> None:
        backoff = Backoff(duration=1.0, factor=2.0, jitter=0.0, cap=100.0, steps=5)
        assert list(backoff.delays()) == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self) -> None:
        backoff = Backoff(duration=1.0, factor=10.0, jitter=0.0, cap=50.0, steps=4)
        assert list(backoff.delays()) == [1.0, 10.0, 50.0]

    def test_jitter_adds_up_to_jitter_times_base(self) -> None:
        backoff = Backoff(duration=2.0, factor=1.0, jitter=1.0, cap=10.0, steps=3)
        assert list(backoff.delays(rand=lambda: 0.5)) == [3.0, 3.0]
        assert list(backoff.delays(rand=lambda: 0.0)) == [2.0, 2.0]

    def test_default_schedule(self) -> None:
        backoff = Backoff()
        delays = list(backoff.delays(rand=lambda: 0.0))
        assert len(delays) == 19
        assert delays[0] == pytest.approx(1.0)
        assert delays[1] == pytest.approx(1.7)
        assert max(delays) == pytest.approx(120.0)

    def test_jitter_applies_after_cap(self) -> None:
        backoff = Backoff(duration=1.0, factor=10.0, jitter=1.0, cap=50.0, steps=4)
        delays = list(backoff.delays(rand=lambda: 1.0))
        assert delays[-1] == pytest.approx(100.0)
        assert max(Backoff().delays(rand=lambda: 1.0)) == pytest.approx(240.0)


class TestExponentialBackoff:
    def test_returns_on_first_success_without_sleeping(self, sleeps) -> None:
        attempts = exponential_backoff(Backoff(steps=3), lambda: True, sleep=sleeps.append)
        assert attempts == 1
        assert sleeps == []

    def test_retries_until_condition_holds(self, sleeps) -> None:
        results = iter([False, False, True])
        backoff = Backoff(duration=1.0, factor=2.0, jitter=0.0, steps=5)
        attempts = exponential_backoff(backoff, lambda: next(results), sleep=sleeps.append)
        assert attempts == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausts_after_steps_attempts(self, sleeps) -> None:
        calls = []

        def never() -> bool:
            calls.append(1)
            return False

        with pytest.raises(BackoffExhausted) as exc_info:
            exponential_backoff(Backoff(steps=4), never, sleep=sleeps.append)

        assert len(calls) == 4
        assert len(sleeps) == 3
        assert exc_info.value.attempts == 4

    def test_condition_errors_propagate(self, sleeps) -> None:
        def boom() -> bool:
            raise RuntimeError("store down")

        with pytest.raises(RuntimeError):
            exponential_backoff(Backoff(steps=4), boom, sleep=sleeps.append)
        assert sleeps == []

    def test_zero_steps_rejected(self) -> None:
        with pytest.raises(ValueError):
            exponential_backoff(Backoff(steps=0), lambda: True)
