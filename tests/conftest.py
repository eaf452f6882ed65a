"""Pytest configuration and fixtures."""

import asyncio
import random

import pytest

from batchsim.jobs.coordinator import LifecycleCoordinator
from batchsim.jobs.runner import JobRunner


@pytest.fixture
def instant_runner():
    """Runner with no latency that always succeeds."""
    return JobRunner(latency_range_ms=(0, 0), failure_rate=0.0, rng=random.Random(7))


@pytest.fixture
def failing_runner():
    """Runner with no latency that always fails."""
    return JobRunner(latency_range_ms=(0, 0), failure_rate=1.0, rng=random.Random(7))


@pytest.fixture
def coordinator(instant_runner):
    return LifecycleCoordinator(runner=instant_runner, concurrency=3, auto_collect=False)


class ReverseOrderRunner:
    """Finishes jobs in descending index order by scaling delay with the index."""

    def __init__(self, total: int, step: float = 0.02):
        self.total = total
        self.step = step
        self._inner = JobRunner(latency_range_ms=(0, 0), failure_rate=0.0)

    async def run(self, handle):
        await asyncio.sleep((self.total - handle.job.index) * self.step)
        return await self._inner.run(handle)


@pytest.fixture
def reverse_runner_factory():
    return ReverseOrderRunner
