"""Unit tests for ``Scheduler``: schedules, target resolution and boot reconciliation."""

from __future__ import annotations

from typing import List

import httpx
import pytest

from panelhub.scheduler.service import Scheduler
from panelhub.schemas.domain import (
    Account,
    AccountCredential,
    AuthType,
    ExecutionOutcome,
    HealthStatus,
    JobKind,
    TenantPreferences,
)
from panelhub.upstream.errors import MissingCredentialField, SchedulingError

PANEL = "http://mock-panel"


def panel_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/user/self":
        return httpx.Response(200, json={"data": {"quota": 500}})
    return httpx.Response(200, json={"items": [], "total": 0})


def _account(tenant: str = "t1", name: str = "hub", auto_refresh: bool = False, **cred) -> Account:
    data = {"base_url": PANEL, "auth_type": AuthType.access_token, "access_token": "tok", "user_id": 1}
    data.update(cred)
    return Account(
        tenant_id=tenant, name=name, credential=AccountCredential(**data), auto_refresh_enabled=auto_refresh
    )


@pytest.fixture
async def scheduler(make_client, stores, recorder):
    sched = Scheduler(make_client(panel_handler), stores.accounts, stores.preferences, recorder)
    yield sched
    await sched.shutdown()


class TestStartSchedule:
    @pytest.mark.asyncio
    async def test_model_sync_cannot_be_scheduled(self, scheduler):
        with pytest.raises(SchedulingError):
            scheduler.start_schedule("t1", JobKind.model_sync)
        assert not scheduler.is_running("t1", JobKind.model_sync)

    @pytest.mark.asyncio
    async def test_refresh_rejects_non_positive_interval(self, scheduler):
        with pytest.raises(SchedulingError):
            scheduler.start_schedule("t1", JobKind.refresh, 0)

    @pytest.mark.asyncio
    async def test_refresh_interval_in_minutes(self, scheduler):
        job = scheduler.start_schedule("t1", JobKind.refresh, 5, ["a1"])
        assert job.interval_seconds == 300
        assert job.account_ids == ["a1"]
        assert scheduler.is_running("t1", JobKind.refresh)

    @pytest.mark.asyncio
    async def test_checkin_runs_daily_regardless_of_interval(self, scheduler):
        job = scheduler.start_schedule("t1", JobKind.checkin, 5)
        assert job.interval_seconds == 24 * 3600

    @pytest.mark.asyncio
    async def test_restart_keeps_a_single_timer(self, scheduler):
        scheduler.start_schedule("t1", JobKind.refresh, 5)
        scheduler.start_schedule("t1", JobKind.refresh, 10)
        assert len(scheduler.jobs.keys()) == 1
        assert scheduler.jobs.get(scheduler.jobs.keys()[0]).interval_seconds == 600

    @pytest.mark.asyncio
    async def test_stop_schedule(self, scheduler):
        scheduler.start_schedule("t1", JobKind.refresh, 5)
        assert scheduler.stop_schedule("t1", JobKind.refresh) is True
        assert scheduler.stop_schedule("t1", JobKind.refresh) is False
        assert not scheduler.is_running("t1", JobKind.refresh)


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_refresh_defaults_to_auto_refresh_accounts(self, scheduler, stores):
        enabled = await stores.accounts.create(_account(name="on", auto_refresh=True))
        await stores.accounts.create(_account(name="off"))

        records = await scheduler.run_once(JobKind.refresh, "t1")

        assert [r.account_id for r in records] == [enabled.id]
        stored = await stores.accounts.get_account(enabled.id, "t1")
        assert stored.snapshot.quota == 500
        assert stored.snapshot.health_status == HealthStatus.healthy

    @pytest.mark.asyncio
    async def test_explicit_ids_override_defaults(self, scheduler, stores):
        off = await stores.accounts.create(_account(name="off"))
        records = await scheduler.run_once(JobKind.refresh, "t1", [off.id])
        assert [r.account_id for r in records] == [off.id]

    @pytest.mark.asyncio
    async def test_checkin_defaults_to_all_accounts(self, scheduler, stores):
        await stores.accounts.create(_account(name="a"))
        await stores.accounts.create(_account(name="b"))

        records = await scheduler.run_once(JobKind.checkin, "t1")

        assert len(records) == 2
        assert {r.outcome for r in records} == {ExecutionOutcome.skipped}

    @pytest.mark.asyncio
    async def test_other_tenants_accounts_are_not_targeted(self, scheduler, stores):
        foreign = await stores.accounts.create(_account(tenant="t2"))
        assert await scheduler.run_once(JobKind.refresh, "t1", [foreign.id]) == []

    @pytest.mark.asyncio
    async def test_no_targets_is_a_noop(self, scheduler, stores):
        assert await scheduler.run_once(JobKind.model_sync, "t1") == []
        page = await stores.records.list("t1")
        assert page.total == 0


class TestSyncAccount:
    @pytest.mark.asyncio
    async def test_returns_fresh_snapshot_without_persisting(self, scheduler, stores):
        snapshot = await scheduler.sync_account(_account().credential)
        assert snapshot.quota == 500
        assert snapshot.health_status == HealthStatus.healthy
        assert await stores.accounts.list_accounts("t1") == []

    @pytest.mark.asyncio
    async def test_missing_field_raises(self, scheduler):
        with pytest.raises(MissingCredentialField):
            await scheduler.sync_account(_account(user_id=None).credential)


class TestReconcileOnBoot:
    @pytest.mark.asyncio
    async def test_restores_only_refresh_for_enabled_tenants(self, scheduler, stores):
        await stores.preferences.save(
            TenantPreferences(tenant_id="t1", auto_refresh_enabled=True, auto_refresh_interval=15, auto_checkin_enabled=True)
        )
        await stores.preferences.save(TenantPreferences(tenant_id="t2", auto_refresh_enabled=False))
        await stores.preferences.save(TenantPreferences(tenant_id="t3", auto_refresh_enabled=True))
        acc = await stores.accounts.create(_account(auto_refresh=True))
        await stores.accounts.create(_account(tenant="t2", auto_refresh=True))

        restored = await scheduler.reconcile_on_boot()

        assert restored == 1
        assert scheduler.is_running("t1", JobKind.refresh)
        assert not scheduler.is_running("t1", JobKind.checkin)
        assert not scheduler.is_running("t2", JobKind.refresh)
        # t3 has no auto-refresh accounts
        assert not scheduler.is_running("t3", JobKind.refresh)
        job = scheduler.jobs.get(scheduler.jobs.keys()[0])
        assert job.interval_seconds == 15 * 60
        assert job.account_ids == [acc.id]

    @pytest.mark.asyncio
    async def test_one_tenant_failure_does_not_block_others(self, scheduler, stores, monkeypatch):
        await stores.preferences.save(TenantPreferences(tenant_id="bad", auto_refresh_enabled=True))
        await stores.preferences.save(TenantPreferences(tenant_id="good", auto_refresh_enabled=True))
        await stores.accounts.create(_account(tenant="bad", auto_refresh=True))
        await stores.accounts.create(_account(tenant="good", auto_refresh=True))

        original = scheduler.accounts.list_auto_refresh_account_ids
        calls: List[str] = []

        async def flaky(tenant_id: str) -> List[str]:
            calls.append(tenant_id)
            if tenant_id == "bad":
                raise RuntimeError("db hiccup")
            return await original(tenant_id)

        monkeypatch.setattr(scheduler, "accounts", _Proxy(scheduler.accounts, flaky))

        assert await scheduler.reconcile_on_boot() == 1
        assert calls == ["bad", "good"]
        assert scheduler.is_running("good", JobKind.refresh)


class _Proxy:
    """Account store wrapper overriding one method."""

    def __init__(self, inner, list_auto_refresh_account_ids):
        self._inner = inner
        self.list_auto_refresh_account_ids = list_auto_refresh_account_ids

    def __getattr__(self, name):
        return getattr(self._inner, name)


class TestShutdown:
    @pytest.mark.asyncio
    async def test_stops_every_timer(self, scheduler):
        scheduler.start_schedule("t1", JobKind.refresh, 5)
        scheduler.start_schedule("t2", JobKind.refresh, 5)
        await scheduler.shutdown()
        assert scheduler.jobs.keys() == []
