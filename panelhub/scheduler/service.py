"""Per-tenant scheduling of Refresh, Checkin and ModelSync work.

``Scheduler`` is the single owner of the job table. It resolves target
accounts, dispatches batches to the runners and restores timers on boot.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from ..core.config import settings
from ..core.database.interfaces import AccountStore, PreferenceStore
from ..history.recorder import HistoryRecorder
from ..panel import PanelApi
from ..schemas.domain import Account, AccountCredential, AccountSnapshot, CheckinConfig, ExecutionRecord, JobKind
from ..syncer import AccountSyncer, PanelFactory
from ..upstream.client import UpstreamClient
from ..upstream.errors import SchedulingError
from .job_table import JobKey, JobTable, ScheduledJob
from .retry import RetryPolicy
from .runners import BatchRunner, CheckinRunner, ModelSyncRunner, RefreshRunner

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Drive recurring and on-demand jobs for every tenant.

    Args:
        client: Shared ``UpstreamClient``.
        accounts: Account store.
        preferences: Tenant preference store.
        recorder: History recorder shared by all runners.
        retry_policy: Model-sync retry policy; defaults from settings.
        panel_factory: Builds the ``PanelApi`` every runner talks to a panel through.
        refresh_interval_minutes: Default Refresh period.
        checkin_interval_hours: Checkin period.
    """

    def __init__(
        self,
        client: UpstreamClient,
        accounts: AccountStore,
        preferences: PreferenceStore,
        recorder: HistoryRecorder,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        panel_factory: PanelFactory = PanelApi,
        refresh_interval_minutes: Optional[float] = None,
        checkin_interval_hours: Optional[float] = None,
    ) -> None:
        sched_cfg = settings.scheduler
        self.client = client
        self.accounts = accounts
        self.preferences = preferences
        self.recorder = recorder
        self.refresh_interval_minutes = refresh_interval_minutes or sched_cfg.refresh_interval_minutes
        self.checkin_interval_hours = checkin_interval_hours or sched_cfg.checkin_interval_hours
        self.jobs = JobTable()
        self.syncer = AccountSyncer(client, accounts, panel_factory=panel_factory)
        self.runners: Dict[JobKind, BatchRunner] = {
            JobKind.refresh: RefreshRunner(self.syncer, recorder),
            JobKind.checkin: CheckinRunner(client, recorder, panel_factory=panel_factory),
            JobKind.model_sync: ModelSyncRunner(
                client, recorder, preferences, retry_policy=retry_policy, panel_factory=panel_factory
            ),
        }

    def start_schedule(
        self,
        tenant_id: str,
        kind: JobKind,
        interval_minutes: Optional[float] = None,
        account_ids: Optional[List[str]] = None,
    ) -> ScheduledJob:
        """
        Install (or replace) the timer for ``(tenant_id, kind)``.

        Refresh waits one full interval before its first tick. Checkin runs
        once immediately, then on its fixed daily cadence.

        Raises:
            SchedulingError: For ModelSync (on-demand only) or a non-positive interval.
        """
        if kind == JobKind.model_sync:
            raise SchedulingError("model sync runs on demand only and cannot be scheduled")
        if kind == JobKind.refresh:
            minutes = self.refresh_interval_minutes if interval_minutes is None else interval_minutes
            if minutes <= 0:
                raise SchedulingError(f"refresh interval must be positive, got {minutes}")
            seconds = minutes * 60
            run_immediately = False
        else:
            seconds = self.checkin_interval_hours * 3600
            run_immediately = True

        ids = list(account_ids) if account_ids else None

        async def tick() -> List[ExecutionRecord]:
            return await self.run_once(kind, tenant_id, ids)

        return self.jobs.start(
            JobKey(tenant_id, kind), seconds, tick, account_ids=ids, run_immediately=run_immediately
        )

    def stop_schedule(self, tenant_id: str, kind: JobKind) -> bool:
        return self.jobs.stop(JobKey(tenant_id, kind))

    def is_running(self, tenant_id: str, kind: JobKind) -> bool:
        return self.jobs.is_running(JobKey(tenant_id, kind))

    async def resolve_targets(
        self, kind: JobKind, tenant_id: str, account_ids: Optional[Sequence[str]] = None
    ) -> List[Account]:
        accounts = await self.accounts.list_accounts(tenant_id)
        if account_ids:
            wanted = set(account_ids)
            return [a for a in accounts if a.id in wanted]
        if kind == JobKind.refresh:
            enabled = set(await self.accounts.list_auto_refresh_account_ids(tenant_id))
            return [a for a in accounts if a.id in enabled]
        return accounts

    async def run_once(
        self, kind: JobKind, tenant_id: str, account_ids: Optional[Sequence[str]] = None
    ) -> List[ExecutionRecord]:
        """
        Run one batch of ``kind`` now.

        Args:
            kind: Job kind.
            tenant_id: Owning tenant.
            account_ids: Explicit targets; when omitted Refresh uses the
                auto-refresh-enabled accounts and the other kinds use all accounts.

        Returns:
            One execution record per targeted account.
        """
        targets = await self.resolve_targets(kind, tenant_id, account_ids)
        if not targets:
            logger.info("[%s] no target accounts for tenant %s", kind.value, tenant_id)
            return []
        return await self.runners[kind].run(tenant_id, targets)

    async def sync_account(
        self, credential: AccountCredential, checkin_config: Optional[CheckinConfig] = None
    ) -> AccountSnapshot:
        """Fetch a fresh snapshot for one credential without persisting it.

        Raises:
            MissingCredentialField: Before any network call.
            UpstreamError: Propagated from the panel.
        """
        fetched = await self.syncer.fetch_account_snapshot(credential, checkin_config)
        return AccountSnapshot().with_success(fetched)

    async def reconcile_on_boot(self) -> int:
        """
        Restore Refresh timers from stored preferences.

        Only Refresh is restored; Checkin and ModelSync timers are not.

        Returns:
            Number of timers installed.
        """
        installed = 0
        for prefs in await self.preferences.list_all():
            if not prefs.auto_refresh_enabled or not prefs.auto_refresh_interval:
                continue
            try:
                ids = await self.accounts.list_auto_refresh_account_ids(prefs.tenant_id)
                if not ids:
                    logger.info("[refresh] tenant %s has no auto-refresh accounts; not restored", prefs.tenant_id)
                    continue
                self.start_schedule(prefs.tenant_id, JobKind.refresh, prefs.auto_refresh_interval, ids)
                installed += 1
            except Exception:
                logger.exception("[refresh] failed to restore timer for tenant %s", prefs.tenant_id)
        logger.info("Scheduler.reconcile_on_boot: restored %d refresh timers; checkin and model_sync timers are not restored", installed)
        return installed

    async def shutdown(self) -> None:
        stopped = self.jobs.stop_all()
        await self.jobs.wait_inflight()
        logger.info("Scheduler.shutdown: stopped %d timers", stopped)
