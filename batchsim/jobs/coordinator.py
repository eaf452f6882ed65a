"""In-process batch session: Build -> Submit -> Collect.

The coordinator owns all lifecycle state for one batch. Every build bumps a
generation counter; a submit remembers the generation it started under and
drops any completion that arrives after a newer build, so stale results
never leak into the current accumulator.

Callers must not start a second submit while one of the current generation
is in flight; the ``submitting`` flag is exposed so the HTTP layer can refuse
re-entry. A newer build releases the flag, since it supersedes the old run.
"""

import asyncio
from collections import OrderedDict
from typing import Dict, List, Optional, Set, Tuple

from batchsim.config import Settings, settings as default_settings
from batchsim.jobs.dispatcher import JobDispatcher
from batchsim.jobs.models import BatchSummary, Handle, HandleStatus, Job, pending_job_id, transition
from batchsim.jobs.pairing import DiscardCounts, expand_jobs, normalize_inputs
from batchsim.jobs.pool import run_with_concurrency
from batchsim.jobs.runner import JobRunner
from batchsim.observability.logging import get_logger

logger = get_logger(__name__)


class LifecycleCoordinator(JobDispatcher):
    """Local batch session driving simulated jobs through a bounded pool."""

    def __init__(
        self,
        runner: Optional[JobRunner] = None,
        concurrency: Optional[int] = None,
        auto_collect: Optional[bool] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or default_settings
        self._runner = runner or JobRunner.from_settings(settings)
        self._concurrency = concurrency if concurrency is not None else settings.default_concurrency
        self._auto_collect = auto_collect if auto_collect is not None else settings.auto_collect

        self._generation = 0
        self._jobs: List[Job] = []
        self._handles: List[Handle] = []
        self._results: "OrderedDict[str, Handle]" = OrderedDict()
        self._collected: List[Handle] = []
        self._discarded = DiscardCounts()
        self._submit_generation: Optional[int] = None
        self._tasks: Set[asyncio.Task] = set()

    # -- read-only views -------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def jobs(self) -> List[Job]:
        return list(self._jobs)

    @property
    def discarded(self) -> DiscardCounts:
        return self._discarded

    @property
    def submitting(self) -> bool:
        return self._submit_generation == self._generation

    def results(self) -> List[Handle]:
        """Latest collect output, else completions so far, else submitted handles."""
        if self._collected:
            return list(self._collected)
        if self._results:
            return list(self._results.values())
        return list(self._handles)

    def summary(self) -> BatchSummary:
        return BatchSummary.from_handles(self.results())

    # -- lifecycle -------------------------------------------------------

    def build(self, mode, shared_refs=None, prompts=None, per_prompt_groups=None, extra_payload=None) -> List[Job]:
        inputs = normalize_inputs(prompts, shared_refs, per_prompt_groups, extra_payload)
        self._generation += 1
        self._jobs = expand_jobs(mode, inputs)
        self._handles = []
        self._results = OrderedDict()
        self._collected = []
        self._discarded = inputs.discarded
        logger.info(
            "batch.built",
            generation=self._generation,
            mode=str(getattr(mode, "value", mode)),
            jobs=len(self._jobs),
            discarded=inputs.discarded.total,
        )
        return self.jobs

    async def submit(
        self,
        concurrency: Optional[int] = None,
        runner: Optional[JobRunner] = None,
        auto_collect: Optional[bool] = None,
    ) -> List[Handle]:
        handles, generation = self._start_submit(concurrency)
        return await self._drive(handles, generation, concurrency, runner, auto_collect)

    def submit_in_background(
        self,
        concurrency: Optional[int] = None,
        runner: Optional[JobRunner] = None,
        auto_collect: Optional[bool] = None,
    ) -> asyncio.Task:
        """Start a submit as a task owned by the coordinator.

        Handles are created and the generation captured before returning,
        so a build issued right afterwards already supersedes this run.
        """
        handles, generation = self._start_submit(concurrency)
        task = asyncio.create_task(self._drive(handles, generation, concurrency, runner, auto_collect))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _start_submit(self, concurrency: Optional[int]) -> Tuple[List[Handle], int]:
        if not self._jobs:
            return [], self._generation
        handles = [transition(Handle(job=job), HandleStatus.RUNNING) for job in self._jobs]
        self._handles = handles
        self._submit_generation = self._generation
        logger.info(
            "batch.submitted",
            generation=self._generation,
            jobs=len(handles),
            concurrency=concurrency if concurrency is not None else self._concurrency,
        )
        return handles, self._generation

    async def _drive(
        self,
        handles: List[Handle],
        generation: int,
        concurrency: Optional[int],
        runner: Optional[JobRunner],
        auto_collect: Optional[bool],
    ) -> List[Handle]:
        if not handles:
            return []

        runner = runner or self._runner
        concurrency = concurrency if concurrency is not None else self._concurrency
        auto_collect = auto_collect if auto_collect is not None else self._auto_collect

        def on_progress(finished: Handle) -> None:
            if generation != self._generation:
                logger.warning(
                    "batch.stale_result_discarded",
                    job_id=finished.job_id,
                    submitted_generation=generation,
                    current_generation=self._generation,
                )
                return
            self._upsert(finished)

        try:
            finished = await run_with_concurrency(handles, runner.run, concurrency, on_progress)
        finally:
            # A stale run must not release the flag held by a newer submit
            if self._submit_generation == generation:
                self._submit_generation = None

        logger.info(
            "batch.drained",
            generation=generation,
            succeeded=sum(1 for h in finished if h.status == HandleStatus.SUCCEEDED),
            failed=sum(1 for h in finished if h.status == HandleStatus.FAILED),
        )

        if auto_collect and generation == self._generation:
            await self.collect()
        return finished

    async def collect(self) -> List[Handle]:
        by_index: Dict[int, Handle] = {h.job.index: h for h in self._results.values()}
        aligned: List[Handle] = []
        pending = 0
        for job in self._jobs:
            handle = by_index.get(job.index)
            if handle is None:
                handle = Handle(job_id=pending_job_id(job.index), status=HandleStatus.QUEUED, job=job)
                pending += 1
            aligned.append(handle)

        self._collected = aligned
        logger.info("batch.collected", generation=self._generation, jobs=len(aligned), pending=pending)
        return list(aligned)

    async def get_status(self, job_id: str) -> Optional[Handle]:
        if job_id in self._results:
            return self._results[job_id]
        for handle in (*self._handles, *self._collected):
            if handle.job_id == job_id:
                return handle
        return None

    async def stop(self) -> None:
        pending = [task for task in self._tasks if not task.done()]
        if pending:
            logger.info("batch.awaiting_submit", generation=self._generation, tasks=len(pending))
            await asyncio.gather(*pending)
        self._tasks.clear()

    def _upsert(self, handle: Handle) -> None:
        # Replace in place if the id was already seen, otherwise append
        self._results[handle.job_id] = handle
        # Keep an earlier mid-flight collect current for its slot
        if self._collected and handle.job.index < len(self._collected):
            self._collected[handle.job.index] = handle
