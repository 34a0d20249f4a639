"""Unit tests for the Refresh, Checkin and ModelSync batch runners."""

from __future__ import annotations

import json
from typing import Dict, List

import httpx
import pytest

from panelhub.panel import PanelApi
from panelhub.scheduler.retry import RetryPolicy
from panelhub.scheduler.runners import CheckinRunner, ModelSyncRunner, RefreshRunner
from panelhub.scheduler.runners.model_sync import ROUTER_NOT_CONFIGURED
from panelhub.schemas.domain import (
    Account,
    AccountCredential,
    AuthType,
    CheckinConfig,
    ExecutionOutcome,
    JobKind,
    TenantPreferences,
)
from panelhub.syncer import AccountSyncer

PANEL = "http://mock-panel"
BROKEN_PANEL = "http://mock-broken"
LOOPING_PANEL = "http://mock-loop"
ROUTER = "http://mock-router"


def _account(base_url: str = PANEL, name: str = "hub", **cred) -> Account:
    data = {"base_url": base_url, "auth_type": AuthType.access_token, "access_token": "tok", "user_id": 1}
    data.update(cred)
    return Account(tenant_id="t1", name=name, credential=AccountCredential(**data))


def _no_sleep_policy(max_attempts: int = 3) -> RetryPolicy:
    async def no_sleep(delay: float) -> None:
        return None

    return RetryPolicy(max_attempts=max_attempts, sleep=no_sleep)


def _redirect_to_self(request: httpx.Request) -> httpx.Response:
    return httpx.Response(302, headers={"Location": str(request.url)})


def _failing_factory_for(base_url: str):
    def factory(client, credential):
        if credential.base_url == base_url:
            raise RuntimeError("panel construction blew up")
        return PanelApi(client, credential)

    return factory


class TestRefreshRunner:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_siblings(self, make_client, recorder, stores):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "mock-broken":
                return httpx.Response(502, json={})
            if request.url.path == "/api/user/self":
                return httpx.Response(200, json={"data": {"quota": 1_000_000}})
            return httpx.Response(200, json={"items": [], "total": 0})

        runner = RefreshRunner(AccountSyncer(make_client(handler)), recorder)
        good, bad = _account(name="good"), _account(BROKEN_PANEL, name="bad")

        records = await runner.run("t1", [good, bad])

        by_name = {r.account_name: r for r in records}
        assert by_name["good"].outcome == ExecutionOutcome.success
        assert by_name["good"].message == "quota=1000000 ($2.00)"
        assert by_name["bad"].outcome == ExecutionOutcome.failed
        page = await stores.records.list("t1", job_kind=JobKind.refresh)
        assert page.total == 2


class TestCheckinRunner:
    @pytest.mark.asyncio
    async def test_falls_through_endpoints_until_one_answers(self, make_client, recorder):
        tried: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            tried.append(request.url.path)
            if request.url.path == "/api/checkin":
                return httpx.Response(200, json={"success": False, "message": "今天已签到"})
            return httpx.Response(404, json={})

        account = _account(checkin_config=CheckinConfig(enable_detection=True))
        records = await CheckinRunner(make_client(handler), recorder).run("t1", [account])

        assert tried == ["/api/user/checkin", "/api/user/check_in", "/api/checkin"]
        assert records[0].outcome == ExecutionOutcome.already_checked
        assert records[0].job_kind == JobKind.checkin

    @pytest.mark.asyncio
    async def test_all_endpoints_failing_is_one_failed_record(self, make_client, recorder):
        account = _account(checkin_config=CheckinConfig(auto_checkin_enabled=True))
        runner = CheckinRunner(make_client(lambda r: httpx.Response(404, json={})), recorder)

        records = await runner.run("t1", [account])

        assert len(records) == 1
        assert records[0].outcome == ExecutionOutcome.failed
        assert "every endpoint" in records[0].message

    @pytest.mark.asyncio
    async def test_html_and_transport_errors_move_on(self, make_client, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/user/checkin":
                raise httpx.ConnectError("refused", request=request)
            if request.url.path == "/api/user/check_in":
                return httpx.Response(200, text="<!doctype html><html></html>", headers={"content-type": "text/html"})
            return httpx.Response(200, json={"message": "签到成功"})

        account = _account(checkin_config=CheckinConfig(enable_detection=True))
        records = await CheckinRunner(make_client(handler), recorder).run("t1", [account])

        assert (records[0].outcome, records[0].message) == (ExecutionOutcome.success, "签到成功")

    @pytest.mark.asyncio
    async def test_disabled_account_is_skipped_without_requests(self, make_client, recorder):
        tried: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            tried.append(request.url.path)
            return httpx.Response(200, json={})

        records = await CheckinRunner(make_client(handler), recorder).run("t1", [_account()])

        assert records[0].outcome == ExecutionOutcome.skipped
        assert tried == []

    @pytest.mark.asyncio
    async def test_custom_url_is_the_only_candidate(self, make_client, recorder):
        tried: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            tried.append(str(request.url))
            return httpx.Response(200, json={"message": "ok"})

        config = CheckinConfig(enable_detection=True, custom_checkin_url="/custom/sign")
        await CheckinRunner(make_client(handler), recorder).run("t1", [_account(checkin_config=config)])

        assert tried == [PANEL + "/custom/sign"]

    @pytest.mark.asyncio
    async def test_missing_credential_fails_without_requests(self, make_client, recorder):
        config = CheckinConfig(enable_detection=True)
        runner = CheckinRunner(make_client(lambda r: httpx.Response(200, json={})), recorder)

        records = await runner.run("t1", [_account(access_token=None, checkin_config=config)])

        assert records[0].outcome == ExecutionOutcome.failed
        assert "access_token" in records[0].message

    @pytest.mark.asyncio
    async def test_redirect_loop_fails_only_that_account(self, make_client, recorder, stores):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "mock-loop":
                return _redirect_to_self(request)
            return httpx.Response(200, json={"message": "签到成功"})

        good = _account(name="good", checkin_config=CheckinConfig(enable_detection=True))
        looping = _account(
            name="looping",
            checkin_config=CheckinConfig(enable_detection=True, custom_checkin_url=LOOPING_PANEL + "/checkin"),
        )

        records = await CheckinRunner(make_client(handler), recorder).run("t1", [good, looping])

        by_name = {r.account_name: r for r in records}
        assert by_name["good"].outcome == ExecutionOutcome.success
        assert by_name["looping"].outcome == ExecutionOutcome.failed
        assert "every endpoint" in by_name["looping"].message
        page = await stores.records.list("t1", job_kind=JobKind.checkin)
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded_as_failed(self, make_client, recorder, stores):
        runner = CheckinRunner(
            make_client(lambda r: httpx.Response(200, json={"message": "签到成功"})),
            recorder,
            panel_factory=_failing_factory_for(BROKEN_PANEL),
        )
        config = CheckinConfig(enable_detection=True)
        good, bad = _account(name="good", checkin_config=config), _account(BROKEN_PANEL, name="bad", checkin_config=config)

        records = await runner.run("t1", [good, bad])

        by_name = {r.account_name: r for r in records}
        assert by_name["good"].outcome == ExecutionOutcome.success
        assert by_name["bad"].outcome == ExecutionOutcome.failed
        assert by_name["bad"].message == "panel construction blew up"
        page = await stores.records.list("t1", job_kind=JobKind.checkin)
        assert page.total == 2


def _router_and_panel(*, channels, models=("a", "b"), update_failures: int = 0, list_status: int = 200):
    state: Dict[str, object] = {"updates": [], "update_calls": 0, "model_calls": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "mock-router":
            if request.method == "GET":
                if list_status != 200:
                    return httpx.Response(list_status, json={"message": "nope"})
                return httpx.Response(200, json={"data": {"items": channels}})
            state["update_calls"] += 1
            if state["update_calls"] <= update_failures:
                return httpx.Response(503, json={"message": "busy"})
            state["updates"].append(json.loads(request.content))
            return httpx.Response(200, json={"success": True})
        state["model_calls"] += 1
        return httpx.Response(200, json={"data": list(models)})

    return handler, state


@pytest.fixture
async def router_prefs(stores):
    await stores.preferences.save(TenantPreferences(tenant_id="t1", router_base_url=ROUTER, router_token="admin"))
    return stores.preferences


class TestModelSyncRunner:
    @pytest.mark.asyncio
    async def test_pushes_live_models_to_matching_channel(self, make_client, recorder, router_prefs):
        channels = [{"id": 7, "name": "hub-ch", "base_url": PANEL + "/", "models": "old1,old2"}]
        handler, state = _router_and_panel(channels=channels)
        runner = ModelSyncRunner(make_client(handler), recorder, router_prefs, retry_policy=_no_sleep_policy())

        records = await runner.run("t1", [_account()])

        rec = records[0]
        assert rec.outcome == ExecutionOutcome.success
        assert (rec.channel_id, rec.channel_name) == (7, "hub-ch")
        assert rec.old_models == ["old1", "old2"]
        assert rec.new_models == ["a", "b"]
        assert rec.attempts == 1
        assert state["updates"] == [{"id": 7, "models": "a,b"}]

    @pytest.mark.asyncio
    async def test_no_matching_channel_fails_without_retry(self, make_client, recorder, router_prefs):
        channels = [{"id": 1, "name": "other", "base_url": "http://mock-elsewhere", "models": ""}]
        handler, state = _router_and_panel(channels=channels)
        runner = ModelSyncRunner(make_client(handler), recorder, router_prefs, retry_policy=_no_sleep_policy())

        records = await runner.run("t1", [_account()])

        assert records[0].outcome == ExecutionOutcome.failed
        assert records[0].attempts == 0
        assert "No matching channel" in records[0].message
        assert state["model_calls"] == 0
        assert state["update_calls"] == 0

    @pytest.mark.asyncio
    async def test_transient_update_failure_is_retried(self, make_client, recorder, router_prefs):
        channels = [{"id": 7, "name": "hub-ch", "base_url": PANEL, "models": ""}]
        handler, state = _router_and_panel(channels=channels, update_failures=1)
        runner = ModelSyncRunner(make_client(handler), recorder, router_prefs, retry_policy=_no_sleep_policy())

        records = await runner.run("t1", [_account()])

        assert records[0].outcome == ExecutionOutcome.success
        assert records[0].attempts == 2
        assert state["model_calls"] == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_record_attempts(self, make_client, recorder, router_prefs):
        channels = [{"id": 7, "name": "hub-ch", "base_url": PANEL, "models": ""}]
        handler, _ = _router_and_panel(channels=channels, update_failures=10)
        runner = ModelSyncRunner(make_client(handler), recorder, router_prefs, retry_policy=_no_sleep_policy(3))

        records = await runner.run("t1", [_account()])

        assert records[0].outcome == ExecutionOutcome.failed
        assert records[0].attempts == 3

    @pytest.mark.asyncio
    async def test_missing_router_fails_every_account(self, make_client, recorder, stores):
        handler, state = _router_and_panel(channels=[])
        runner = ModelSyncRunner(make_client(handler), recorder, stores.preferences, retry_policy=_no_sleep_policy())

        records = await runner.run("t1", [_account(name="a"), _account(name="b")])

        assert [r.outcome for r in records] == [ExecutionOutcome.failed] * 2
        assert all(r.message == ROUTER_NOT_CONFIGURED for r in records)
        assert state["model_calls"] == 0

    @pytest.mark.asyncio
    async def test_channel_listing_failure_fails_batch(self, make_client, recorder, router_prefs):
        handler, _ = _router_and_panel(channels=[], list_status=401)
        runner = ModelSyncRunner(make_client(handler), recorder, router_prefs, retry_policy=_no_sleep_policy())

        records = await runner.run("t1", [_account()])

        assert records[0].outcome == ExecutionOutcome.failed
        assert records[0].message.startswith("failed to list router channels")

    @pytest.mark.asyncio
    async def test_redirect_loop_on_model_list_fails_only_that_account(self, make_client, recorder, router_prefs, stores):
        channels = [
            {"id": 7, "name": "hub-ch", "base_url": PANEL, "models": ""},
            {"id": 8, "name": "loop-ch", "base_url": LOOPING_PANEL, "models": "old"},
        ]
        router_handler, state = _router_and_panel(channels=channels)

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "mock-loop":
                return _redirect_to_self(request)
            return router_handler(request)

        runner = ModelSyncRunner(make_client(handler), recorder, router_prefs, retry_policy=_no_sleep_policy(2))

        records = await runner.run("t1", [_account(name="good"), _account(LOOPING_PANEL, name="looping")])

        by_name = {r.account_name: r for r in records}
        assert by_name["good"].outcome == ExecutionOutcome.success
        assert by_name["looping"].outcome == ExecutionOutcome.failed
        assert by_name["looping"].attempts == 2
        assert by_name["looping"].channel_id == 8
        assert state["updates"] == [{"id": 7, "models": "a,b"}]
        page = await stores.records.list("t1", job_kind=JobKind.model_sync)
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded_as_failed(self, make_client, recorder, router_prefs):
        channels = [
            {"id": 7, "name": "hub-ch", "base_url": PANEL, "models": ""},
            {"id": 9, "name": "broken-ch", "base_url": BROKEN_PANEL, "models": ""},
        ]
        handler, _ = _router_and_panel(channels=channels)
        runner = ModelSyncRunner(
            make_client(handler),
            recorder,
            router_prefs,
            retry_policy=_no_sleep_policy(),
            panel_factory=_failing_factory_for(BROKEN_PANEL),
        )

        records = await runner.run("t1", [_account(name="good"), _account(BROKEN_PANEL, name="bad")])

        by_name = {r.account_name: r for r in records}
        assert by_name["good"].outcome == ExecutionOutcome.success
        assert by_name["bad"].outcome == ExecutionOutcome.failed
        assert by_name["bad"].message == "panel construction blew up"
