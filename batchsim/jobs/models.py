"""Job and handle data models for simulated batch submission."""

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field
import uuid

from batchsim.config import settings


class PairingMode(str, Enum):
    ONE_TO_MANY = "one-to-many"
    ZIP = "zip"
    CARTESIAN = "cartesian"


class HandleStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({HandleStatus.SUCCEEDED, HandleStatus.FAILED})

# Allowed lifecycle moves: queued -> running -> {succeeded | failed}
_TRANSITIONS = {
    HandleStatus.QUEUED: frozenset({HandleStatus.RUNNING}),
    HandleStatus.RUNNING: frozenset({HandleStatus.SUCCEEDED, HandleStatus.FAILED}),
    HandleStatus.SUCCEEDED: frozenset(),
    HandleStatus.FAILED: frozenset(),
}


class InvalidTransition(ValueError):
    """Raised when a handle is moved along an edge the lifecycle forbids."""


class GenerationParams(BaseModel):
    """Parameters copied verbatim into every job of a build."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    size: str = Field(default=settings.default_image_size, pattern=r"^\d+x\d+$")


class Job(BaseModel):
    """One prompt + reference set with a fixed position in its build."""
    model_config = ConfigDict(frozen=True)

    index: int
    prompt: str
    refs: Tuple[str, ...] = ()
    payload: GenerationParams = Field(default_factory=GenerationParams)


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:8]}"


def pending_job_id(index: int) -> str:
    return f"pending_{index}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Handle(BaseModel):
    """Tracks the lifecycle of one submitted job."""
    job_id: str = Field(default_factory=new_job_id)
    status: HandleStatus = HandleStatus.QUEUED
    job: Job
    submit_ts: datetime = Field(default_factory=utcnow)
    finish_ts: Optional[datetime] = None
    result_placeholder: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def transition(handle: Handle, status: HandleStatus, **fields) -> Handle:
    """Return a copy of *handle* moved to *status*.

    Terminal moves stamp ``finish_ts`` unless the caller supplies one.
    The input handle is never modified.
    """
    if status not in _TRANSITIONS[handle.status]:
        raise InvalidTransition(
            f"Handle {handle.job_id} cannot move from {handle.status.value} to {status.value}"
        )
    update = {"status": status, **fields}
    if status in TERMINAL_STATUSES and update.get("finish_ts") is None:
        update["finish_ts"] = utcnow()
    return handle.model_copy(update=update)


class BatchSummary(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    running: int = 0
    queued: int = 0

    @classmethod
    def from_handles(cls, handles: Iterable[Handle]) -> "BatchSummary":
        counts = {status: 0 for status in HandleStatus}
        total = 0
        for h in handles:
            counts[h.status] += 1
            total += 1
        return cls(
            total=total,
            succeeded=counts[HandleStatus.SUCCEEDED],
            failed=counts[HandleStatus.FAILED],
            running=counts[HandleStatus.RUNNING],
            queued=counts[HandleStatus.QUEUED],
        )
