from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from ..core.database.interfaces import ExecutionRecordStore
from ..normalizer.logs import today_window
from ..schemas.domain import ExecutionOutcome, ExecutionRecord, JobKind
from .summary import RunSummary, summarize_runs

logger = logging.getLogger(__name__)

EXTRA_FIELDS = ("channel_id", "channel_name", "old_models", "new_models", "attempts")

SUMMARY_PAGE_SIZE = 500


class HistoryRecorder:
    """
    Append-only writer of execution records.

    Args:
        store: Backing ``ExecutionRecordStore``.
    """

    def __init__(self, store: ExecutionRecordStore) -> None:
        self.store = store

    async def record(
        self,
        tenant_id: str,
        account_id: str,
        account_name: str,
        outcome: ExecutionOutcome,
        message: Optional[str],
        *,
        job_kind: JobKind,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionRecord:
        """
        Build and append one immutable record.

        Args:
            tenant_id: Owning tenant.
            account_id: Account the job ran against.
            account_name: Display name at the time of the run.
            outcome: Result of the run.
            message: Human-readable detail.
            job_kind: Which job produced the record.
            extra: Model-sync fields (``channel_id``, ``channel_name``, ``old_models``,
                ``new_models``, ``attempts``); other keys are ignored.

        Returns:
            ExecutionRecord: The stored record.
        """
        fields = {k: v for k, v in (extra or {}).items() if k in EXTRA_FIELDS}
        rec = ExecutionRecord(
            tenant_id=tenant_id,
            job_kind=job_kind,
            account_id=account_id,
            account_name=account_name,
            outcome=outcome,
            message=message,
            **fields,
        )
        await self.store.append(rec)
        logger.debug("[%s] recorded %s for account %s", job_kind.value, outcome.value, account_id)
        return rec

    async def summary(self, tenant_id: str, job_kind: JobKind, *, now: Optional[datetime] = None) -> RunSummary:
        """Summarize today's runs of one job kind for a tenant."""
        start, _ = today_window(now)
        since = datetime.fromtimestamp(start, tz=timezone.utc)
        records: List[ExecutionRecord] = []
        page = 1
        while True:
            batch = await self.store.list(tenant_id, job_kind=job_kind, since=since, page=page, page_size=SUMMARY_PAGE_SIZE)
            records.extend(batch.items)
            if page >= batch.total_pages or not batch.items:
                break
            page += 1
        return summarize_runs(records, since=since)
