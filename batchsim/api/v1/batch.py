"""Batch API — build jobs, submit them, collect aligned results, export CSV."""

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel
from typing import Any, List, Optional

from batchsim.config import settings
from batchsim.jobs.export import export_filename, to_csv
from batchsim.jobs.inputs import (
    SAMPLE_SHARED_REFS,
    clamp_concurrency,
    clamp_latency,
    parse_prompt_text,
    sample_groups,
    sync_groups_to_prompts,
)
from batchsim.jobs.models import GenerationParams, Handle
from batchsim.jobs.runner import JobRunner

router = APIRouter()

# Set by main.py during lifespan
_coordinator = None


def set_coordinator(coordinator):
    global _coordinator
    _coordinator = coordinator


def get_coordinator():
    return _coordinator


def _require_coordinator():
    if _coordinator is None:
        raise HTTPException(status_code=503, detail="Batch coordinator not initialized")
    return _coordinator


class BuildRequest(BaseModel):
    # Loosely typed on purpose: malformed shapes degrade to empty lists
    mode: Any = "one-to-many"
    prompts: Any = None
    prompt_text: Optional[str] = None
    shared_refs: Any = None
    per_prompt_refs: Any = None
    size: Optional[str] = None
    # Pad/truncate groups to one per prompt; optionally fill empty ones
    sync_groups: bool = False
    fill_groups: bool = False


class SubmitRequest(BaseModel):
    concurrency: int = settings.default_concurrency
    latency_min_seconds: float = settings.latency_min_seconds
    latency_max_seconds: float = settings.latency_max_seconds
    failure_rate: float = settings.failure_rate
    auto_collect: bool = settings.auto_collect
    wait: bool = False


def _handle_payload(handle: Handle) -> dict:
    return {
        "index": handle.job.index,
        "job_id": handle.job_id,
        "status": handle.status.value,
        "prompt": handle.job.prompt,
        "refs": list(handle.job.refs),
        "submit_ts": handle.submit_ts.isoformat() if handle.submit_ts else None,
        "finish_ts": handle.finish_ts.isoformat() if handle.finish_ts else None,
        "result": handle.result_placeholder,
        "error": handle.error,
    }


def _results_payload(coordinator, handles: List[Handle]) -> dict:
    return {
        "generation": coordinator.generation,
        "submitting": coordinator.submitting,
        "summary": coordinator.summary().model_dump(),
        "results": [_handle_payload(h) for h in handles],
    }


@router.post("/batch/build")
async def build_batch(request: BuildRequest):
    """Expand prompts and references into a fresh job list."""
    coordinator = _require_coordinator()

    prompts = request.prompts
    if prompts is None and request.prompt_text is not None:
        prompts = parse_prompt_text(request.prompt_text)

    groups = request.per_prompt_refs
    if (request.sync_groups or request.fill_groups) and isinstance(prompts, list):
        groups = sync_groups_to_prompts(
            groups if isinstance(groups, list) else [],
            len(prompts),
            fill=request.fill_groups,
            fill_count=settings.group_fill_count,
        )

    payload = {"size": request.size} if request.size else None
    jobs = coordinator.build(
        request.mode,
        shared_refs=request.shared_refs,
        prompts=prompts,
        per_prompt_groups=groups,
        extra_payload=payload,
    )
    discarded = coordinator.discarded
    return {
        "generation": coordinator.generation,
        "count": len(jobs),
        "discarded": {**vars(discarded), "total": discarded.total},
        "jobs": [job.model_dump(mode="json") for job in jobs],
    }


@router.post("/batch/submit")
async def submit_batch(request: SubmitRequest):
    """Submit every built job to the simulated worker pool."""
    coordinator = _require_coordinator()

    if not coordinator.jobs:
        raise HTTPException(status_code=400, detail="No jobs built. POST /api/v1/batch/build first.")
    if coordinator.submitting:
        raise HTTPException(status_code=409, detail="A submit is already in flight")

    low, high = clamp_latency(request.latency_min_seconds, request.latency_max_seconds)
    runner = JobRunner(latency_range_ms=(low * 1000, high * 1000), failure_rate=request.failure_rate)
    kwargs = dict(
        concurrency=clamp_concurrency(request.concurrency),
        runner=runner,
        auto_collect=request.auto_collect,
    )

    if request.wait:
        await coordinator.submit(**kwargs)
        return _results_payload(coordinator, coordinator.results())

    coordinator.submit_in_background(**kwargs)
    return {
        "generation": coordinator.generation,
        "status": "submitted",
        "count": len(coordinator.jobs),
        "message": "Batch submitted. Poll GET /api/v1/batch/results or POST /api/v1/batch/collect.",
    }


@router.post("/batch/collect")
async def collect_batch():
    """Align completions to job order, filling gaps with pending entries."""
    coordinator = _require_coordinator()
    aligned = await coordinator.collect()
    return _results_payload(coordinator, aligned)


@router.get("/batch/results")
async def get_results():
    coordinator = _require_coordinator()
    return _results_payload(coordinator, coordinator.results())


@router.get("/batch/jobs/{job_id}")
async def get_handle(job_id: str):
    """Get the current state of one submitted job."""
    coordinator = _require_coordinator()
    handle = await coordinator.get_status(job_id)
    if handle is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _handle_payload(handle)


@router.get("/batch/export.csv")
async def export_csv():
    """Download the current results as CSV."""
    coordinator = _require_coordinator()
    return Response(
        content=to_csv(coordinator.results()),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.get("/batch/samples")
async def get_samples(
    prompt_count: int = Query(3),
    group_size: int = Query(settings.group_fill_count),
):
    """Sample shared references and placeholder groups for quick experiments."""
    return {
        "shared_refs": list(SAMPLE_SHARED_REFS),
        "per_prompt_refs": sample_groups(prompt_count, group_size),
        "default_size": GenerationParams().size,
    }
