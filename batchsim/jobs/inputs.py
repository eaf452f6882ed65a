"""Helpers for preparing batch inputs: prompt text, placeholder groups, limits."""

import math
from typing import Any, List, Sequence, Tuple

SAMPLE_SHARED_REFS: Tuple[str, ...] = ("REF_A", "REF_B", "REF_C", "REF_D")

MAX_GROUP_SIZE = 12
MAX_SAMPLE_GROUPS = 50
MAX_CONCURRENCY = 8
MAX_LATENCY_SECONDS = 60


def parse_prompt_text(text: str) -> List[str]:
    """One prompt per line; surrounding whitespace and blank lines dropped."""
    if not isinstance(text, str):
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]


def make_placeholders(group_index: int, count: int) -> List[str]:
    """Placeholder reference ids ``P<group>_<n>`` (both 1-based)."""
    count = max(0, min(MAX_GROUP_SIZE, int(count)))
    return [f"P{group_index + 1}_{i + 1}" for i in range(count)]


def sample_groups(group_count: int, group_size: int) -> List[List[str]]:
    group_count = max(0, min(MAX_SAMPLE_GROUPS, int(group_count)))
    return [make_placeholders(g, group_size) for g in range(group_count)]


def sync_groups_to_prompts(
    groups: Sequence[Any],
    prompt_count: int,
    fill: bool = False,
    fill_count: int = 2,
) -> List[List[str]]:
    """Truncate or pad *groups* so there is exactly one per prompt.

    Padding uses explicit empty groups. With ``fill`` every empty group is
    replaced by ``fill_count`` placeholders.
    """
    prompt_count = max(0, int(prompt_count))
    synced = [list(g) if isinstance(g, (list, tuple)) else [] for g in list(groups or [])[:prompt_count]]
    while len(synced) < prompt_count:
        synced.append([])
    if fill:
        synced = [g if g else make_placeholders(i, fill_count) for i, g in enumerate(synced)]
    return synced


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clamp_latency(min_seconds: float, max_seconds: float) -> Tuple[int, int]:
    """Round both bounds to whole seconds within [0, 60], lower bound first.

    Halves round up, so 2.5 becomes 3.
    """
    low = max(0, min(MAX_LATENCY_SECONDS, _round_half_up(min_seconds)))
    high = max(0, min(MAX_LATENCY_SECONDS, _round_half_up(max_seconds)))
    if low > high:
        low, high = high, low
    return low, high


def clamp_concurrency(k: int) -> int:
    return max(1, min(MAX_CONCURRENCY, int(k)))
