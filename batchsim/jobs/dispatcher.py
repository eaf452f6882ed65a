"""Batch dispatcher interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from batchsim.jobs.models import Handle, Job


class JobDispatcher(ABC):
    """Abstract interface for batch dispatching (simulated or remote)."""

    @abstractmethod
    def build(self, mode, shared_refs=None, prompts=None, per_prompt_groups=None, extra_payload=None) -> List[Job]:
        """Expand inputs into the current job list, superseding any prior batch."""
        ...

    @abstractmethod
    async def submit(self) -> List[Handle]:
        """Run every current job to a terminal state. Returns handles in completion order."""
        ...

    @abstractmethod
    async def collect(self) -> List[Handle]:
        """Return one handle per job, ordered by job index."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[Handle]:
        """Get current state of a handle."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
