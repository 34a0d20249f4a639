from __future__ import annotations

import logging

from ...display import to_currency
from ...history.recorder import HistoryRecorder
from ...schemas.domain import Account, ExecutionOutcome, ExecutionRecord, JobKind
from ...syncer import AccountSyncer
from .base import BatchRunner

logger = logging.getLogger(__name__)


class RefreshRunner(BatchRunner):
    """Re-sync account snapshots; one failure never aborts the siblings."""

    kind = JobKind.refresh

    def __init__(self, syncer: AccountSyncer, recorder: HistoryRecorder) -> None:
        super().__init__(recorder)
        self.syncer = syncer

    async def run_account(self, tenant_id: str, account: Account) -> ExecutionRecord:
        try:
            snapshot = await self.syncer.sync(account)
        except Exception as e:
            logger.warning("%s account %s failed: %s", self.tag, account.id, e)
            return await self.record(tenant_id, account, ExecutionOutcome.failed, str(e) or type(e).__name__)
        amount = to_currency(snapshot.quota, account.credential.exchange_rate)
        return await self.record(
            tenant_id, account, ExecutionOutcome.success, f"quota={snapshot.quota} (${amount.usd:.2f})"
        )
