"""Simulated remote execution of a single job handle."""

import asyncio
import random
from typing import Awaitable, Callable, Optional, Tuple

from batchsim.config import Settings
from batchsim.jobs.models import Handle, HandleStatus, transition

SIMULATED_ERROR = "Simulated error"

Sleep = Callable[[float], Awaitable[None]]


def normalize_latency_range(latency_range_ms: Tuple[float, float]) -> Tuple[int, int]:
    """Clamp negative bounds to zero and order the pair as (low, high)."""
    low, high = (max(0, int(v)) for v in latency_range_ms)
    if low > high:
        low, high = high, low
    return low, high


def _clamp_rate(failure_rate: float) -> float:
    return min(1.0, max(0.0, float(failure_rate)))


class JobRunner:
    """Stands in for a remote worker: wait a random delay, then succeed or fail.

    Each call draws one uniform integer delay in ``latency_range_ms``
    (inclusive), sleeps for it, then draws once more against
    ``failure_rate``. The result is a new handle in a terminal state;
    the handle passed in is left untouched. There is no retry, timeout or
    cancellation, so ``run`` never raises for a running handle.

    ``run`` accepts per-call ``latency_range_ms`` and ``failure_rate``
    overrides; without them the values given at construction apply.
    """

    def __init__(
        self,
        latency_range_ms: Tuple[float, float] = (300, 900),
        failure_rate: float = 0.06,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.latency_range_ms = normalize_latency_range(latency_range_ms)
        self.failure_rate = _clamp_rate(failure_rate)
        self._rng = rng or random.Random()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "JobRunner":
        """Build a runner from configured latency seconds and failure rate."""
        return cls(
            latency_range_ms=(settings.latency_min_seconds * 1000, settings.latency_max_seconds * 1000),
            failure_rate=settings.failure_rate,
            **kwargs,
        )

    def draw_delay_ms(self, latency_range_ms: Optional[Tuple[float, float]] = None) -> int:
        if latency_range_ms is None:
            low, high = self.latency_range_ms
        else:
            low, high = normalize_latency_range(latency_range_ms)
        return self._rng.randint(low, high)

    async def run(
        self,
        handle: Handle,
        latency_range_ms: Optional[Tuple[float, float]] = None,
        failure_rate: Optional[float] = None,
    ) -> Handle:
        rate = self.failure_rate if failure_rate is None else _clamp_rate(failure_rate)
        await self._sleep(self.draw_delay_ms(latency_range_ms) / 1000)

        if self._rng.random() < rate:
            return transition(handle, HandleStatus.FAILED, error=SIMULATED_ERROR)
        return transition(
            handle,
            HandleStatus.SUCCEEDED,
            result_placeholder=f"OK:{handle.job.index}",
        )
