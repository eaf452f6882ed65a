"""Flat tabular export of handles (one CSV row per handle)."""

import csv
import io
from datetime import datetime
from typing import Iterable, List, Optional

from batchsim.jobs.models import Handle, utcnow

EXPORT_COLUMNS = (
    "index",
    "job_id",
    "status",
    "prompt",
    "refs_count",
    "submit_ts",
    "finish_ts",
    "error",
    "result",
)


def _iso(ts: Optional[datetime]) -> str:
    return ts.isoformat() if ts else ""


def export_row(handle: Handle) -> List[str]:
    return [
        str(handle.job.index),
        handle.job_id,
        handle.status.value,
        handle.job.prompt.replace("\r\n", " ").replace("\n", " "),
        str(len(handle.job.refs)),
        _iso(handle.submit_ts),
        _iso(handle.finish_ts),
        handle.error or "",
        handle.result_placeholder or "",
    ]


def export_rows(handles: Iterable[Handle]) -> List[List[str]]:
    """Header row followed by one row per handle, in the order given."""
    return [list(EXPORT_COLUMNS)] + [export_row(h) for h in handles]


def to_csv(handles: Iterable[Handle]) -> str:
    """Render handles as CSV with every field quoted."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(export_rows(handles))
    return buf.getvalue()


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"status_{now.strftime('%Y-%m-%dT%H:%M:%S')}.csv"
