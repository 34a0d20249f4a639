from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Optional

from ..schemas.base import BaseSchema
from ..schemas.domain import ExecutionOutcome, ExecutionRecord

SUCCESS_OUTCOMES = frozenset({ExecutionOutcome.success, ExecutionOutcome.already_checked})


class RunResult(str, Enum):
    success = "success"
    partial = "partial"
    failed = "failed"


class RunSummary(BaseSchema):
    success_count: int = 0
    failed_count: int = 0
    total_count: int = 0
    last_run_at: Optional[datetime] = None
    last_run_result: Optional[RunResult] = None


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def summarize_runs(records: Iterable[ExecutionRecord], *, since: Optional[datetime] = None) -> RunSummary:
    """Summarize the latest record of each account at or after ``since``.

    ``skipped`` records count toward ``total_count`` only.
    """
    latest: Dict[str, ExecutionRecord] = {}
    for rec in records:
        if since is not None and _utc(rec.timestamp) < _utc(since):
            continue
        current = latest.get(rec.account_id)
        if current is None or _utc(rec.timestamp) > _utc(current.timestamp):
            latest[rec.account_id] = rec

    if not latest:
        return RunSummary()

    success = sum(1 for r in latest.values() if r.outcome in SUCCESS_OUTCOMES)
    failed = sum(1 for r in latest.values() if r.outcome == ExecutionOutcome.failed)
    if failed == 0:
        result = RunResult.success
    elif success == 0:
        result = RunResult.failed
    else:
        result = RunResult.partial
    return RunSummary(
        success_count=success,
        failed_count=failed,
        total_count=len(latest),
        last_run_at=max(_utc(r.timestamp) for r in latest.values()),
        last_run_result=result,
    )
