from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence

from ...history.recorder import HistoryRecorder
from ...schemas.domain import Account, ExecutionOutcome, ExecutionRecord, JobKind

logger = logging.getLogger(__name__)


class BatchRunner:
    """
    Shared per-account fan-out for job runners.

    Subclasses implement ``run_account``; every account yields exactly one
    record, whatever happens inside it.
    """

    kind: JobKind

    def __init__(self, recorder: HistoryRecorder) -> None:
        self.recorder = recorder

    @property
    def tag(self) -> str:
        return f"[{self.kind.value}]"

    async def run(self, tenant_id: str, accounts: Sequence[Account]) -> List[ExecutionRecord]:
        logger.info("%s running %d accounts for tenant %s", self.tag, len(accounts), tenant_id)
        records = await self.fan_out(
            accounts, lambda acc: self.guarded(tenant_id, acc, lambda: self.run_account(tenant_id, acc))
        )
        logger.info(
            "%s finished tenant %s: %d ok, %d failed",
            self.tag,
            tenant_id,
            sum(1 for r in records if r.outcome in (ExecutionOutcome.success, ExecutionOutcome.already_checked)),
            sum(1 for r in records if r.outcome == ExecutionOutcome.failed),
        )
        return records

    async def fan_out(
        self,
        accounts: Sequence[Account],
        fn: Callable[[Account], Awaitable[ExecutionRecord]],
    ) -> List[ExecutionRecord]:
        return list(await asyncio.gather(*(fn(acc) for acc in accounts)))

    async def guarded(
        self,
        tenant_id: str,
        account: Account,
        fn: Callable[[], Awaitable[ExecutionRecord]],
    ) -> ExecutionRecord:
        """Run one account's work; an unexpected error becomes a ``failed`` record."""
        try:
            return await fn()
        except Exception as e:
            logger.exception("%s account %s failed unexpectedly", self.tag, account.id)
            return await self.record(tenant_id, account, ExecutionOutcome.failed, str(e) or type(e).__name__)

    async def run_account(self, tenant_id: str, account: Account) -> ExecutionRecord:
        raise NotImplementedError

    async def record(
        self,
        tenant_id: str,
        account: Account,
        outcome: ExecutionOutcome,
        message: Optional[str],
        extra: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionRecord:
        return await self.recorder.record(
            tenant_id,
            account.id,
            account.display_name,
            outcome,
            message,
            job_kind=self.kind,
            extra=extra,
        )
