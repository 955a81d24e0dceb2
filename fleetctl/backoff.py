"""Bounded exponential backoff with jitter for polling asynchronous conditions."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Iterator

from .config import settings
from .errors import BackoffExhausted

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backoff:
    duration: float = 1.0
    factor: float = 1.7
    jitter: float = 1.0
    cap: float = 120.0
    steps: int = 20

    @classmethod
    def from_settings(cls) -> "Backoff":
        return cls(
            duration=settings.cleanup_backoff_initial,
            factor=settings.cleanup_backoff_factor,
            jitter=settings.cleanup_backoff_jitter,
            cap=settings.cleanup_backoff_cap,
            steps=settings.cleanup_backoff_steps,
        )

    def delays(self, rand: Callable[[], float] = random.random) -> Iterator[float]:
        """Yield the ``steps - 1`` sleeps taken between ``steps`` attempts.

        The base delay grows by ``factor`` and is clamped at ``cap``; jitter
        adds up to ``jitter * base`` on top of it after clamping, so a single
        sleep can reach ``cap * (1 + jitter)``.
        """
        base = self.duration
        for _ in range(max(self.steps - 1, 0)):
            base = min(base, self.cap) if self.cap > 0 else base
            delay = base
            if self.jitter > 0:
                delay += rand() * self.jitter * base
            yield delay
            base *= self.factor


def exponential_backoff(
    backoff: Backoff,
    condition: Callable[[], bool],
    sleep: Callable[[float], None] = time.sleep,
    rand: Callable[[], float] = random.random,
) -> int:
    """Call *condition* until it returns True, at most ``backoff.steps`` times.

    Returns the number of attempts it took. Exceptions from *condition*
    propagate immediately; running out of attempts raises BackoffExhausted.
    """
    if backoff.steps < 1:
        raise ValueError("backoff needs at least one step")

    delays = backoff.delays(rand)
    attempt = 0
    while True:
        attempt += 1
        if condition():
            return attempt
        delay = next(delays, None)
        if delay is None:
            raise BackoffExhausted(
                f"condition not met after {attempt} attempts", attempts=attempt
            )
        log.debug("condition not met (attempt %d/%d), retrying in %.2fs", attempt, backoff.steps, delay)
        sleep(delay)
