"""Pairing engine: expand prompts and reference groups into an ordered job list.

Three strategies are supported:

* ``one-to-many`` - every prompt gets the whole shared reference list.
* ``zip`` - prompt *i* gets group *i*; the longer side is truncated.
* ``cartesian`` - every prompt is crossed with every group, each group
  taken as one whole option (an explicitly empty group gives a text-only
  job). Without groups, every prompt is crossed with each shared
  reference individually.

Inputs are normalized instead of validated: any malformed shape degrades
to an empty list and is counted in :class:`DiscardCounts`, so building
jobs never raises.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from batchsim.jobs.models import GenerationParams, Job, PairingMode
from batchsim.observability.logging import get_logger

logger = get_logger(__name__)

PayloadInput = Union[GenerationParams, Mapping[str, Any], None]


@dataclass
class DiscardCounts:
    """How many inputs normalization dropped or coerced, per source."""
    prompts: int = 0
    shared_refs: int = 0
    groups: int = 0
    group_entries: int = 0
    payload: int = 0

    @property
    def total(self) -> int:
        return self.prompts + self.shared_refs + self.groups + self.group_entries + self.payload


@dataclass
class NormalizedInputs:
    prompts: List[str] = field(default_factory=list)
    shared_refs: List[str] = field(default_factory=list)
    groups: List[List[str]] = field(default_factory=list)
    payload: GenerationParams = field(default_factory=GenerationParams)
    discarded: DiscardCounts = field(default_factory=DiscardCounts)


def _as_list(value: Any) -> Optional[list]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return None


def normalize_inputs(
    prompts: Any = None,
    shared_refs: Any = None,
    per_prompt_groups: Any = None,
    extra_payload: PayloadInput = None,
) -> NormalizedInputs:
    """Clean raw inputs into well-typed lists, counting what was discarded."""
    out = NormalizedInputs()
    counts = out.discarded

    raw_prompts = _as_list(prompts)
    if raw_prompts is None:
        counts.prompts += 0 if prompts is None else 1
        raw_prompts = []
    for p in raw_prompts:
        if isinstance(p, str):
            out.prompts.append(p)
        else:
            counts.prompts += 1

    raw_shared = _as_list(shared_refs)
    if raw_shared is None:
        counts.shared_refs += 0 if shared_refs is None else 1
        raw_shared = []
    for ref in raw_shared:
        if isinstance(ref, str) and ref:
            out.shared_refs.append(ref)
        else:
            counts.shared_refs += 1

    raw_groups = _as_list(per_prompt_groups)
    if raw_groups is None:
        counts.groups += 0 if per_prompt_groups is None else 1
        raw_groups = []
    for group in raw_groups:
        entries = _as_list(group)
        if entries is None:
            # A malformed group still occupies its slot, as an explicit empty one
            counts.groups += 1
            out.groups.append([])
            continue
        cleaned = [e for e in entries if isinstance(e, str)]
        counts.group_entries += len(entries) - len(cleaned)
        out.groups.append(cleaned)

    if isinstance(extra_payload, GenerationParams):
        out.payload = extra_payload
    elif isinstance(extra_payload, Mapping):
        try:
            out.payload = GenerationParams(**extra_payload)
        except (ValidationError, TypeError):
            counts.payload += 1
    elif extra_payload is not None:
        counts.payload += 1

    return out


def expand_jobs(mode: Any, inputs: NormalizedInputs) -> List[Job]:
    """Expand already-normalized inputs into jobs for *mode*."""
    try:
        mode = PairingMode(mode)
    except ValueError:
        return []

    prompts = inputs.prompts
    shared: Tuple[str, ...] = tuple(inputs.shared_refs)
    groups = [tuple(g) for g in inputs.groups]
    payload = inputs.payload
    jobs: List[Job] = []

    if mode is PairingMode.ONE_TO_MANY:
        for idx, prompt in enumerate(prompts):
            jobs.append(Job(index=idx, prompt=prompt, refs=shared, payload=payload))
        return jobs

    if mode is PairingMode.ZIP:
        for idx, (prompt, group) in enumerate(zip(prompts, groups)):
            jobs.append(Job(index=idx, prompt=prompt, refs=group, payload=payload))
        return jobs

    # Cartesian: groups are whole options; fall back to single shared refs
    options = groups if groups else [(ref,) for ref in shared]
    idx = 0
    for prompt in prompts:
        for refs in options:
            jobs.append(Job(index=idx, prompt=prompt, refs=refs, payload=payload))
            idx += 1
    return jobs


def build_jobs(
    mode: Any,
    shared_refs: Any = None,
    prompts: Any = None,
    per_prompt_groups: Any = None,
    extra_payload: PayloadInput = None,
) -> List[Job]:
    """Build the ordered job list for one batch.

    Pure and deterministic: identical inputs give structurally identical
    jobs, with indices ``0..N-1``. Never raises; see :func:`normalize_inputs`.
    """
    inputs = normalize_inputs(prompts, shared_refs, per_prompt_groups, extra_payload)
    if inputs.discarded.total:
        logger.debug("pairing.inputs_discarded", **vars(inputs.discarded))
    return expand_jobs(mode, inputs)
