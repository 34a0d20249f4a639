from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from ...core.config import settings
from ...core.database.interfaces import PreferenceStore
from ...history.recorder import HistoryRecorder
from ...panel import PanelApi
from ...schemas.domain import (
    Account,
    AccountCredential,
    Channel,
    ExecutionOutcome,
    ExecutionRecord,
    JobKind,
    TenantPreferences,
)
from ...upstream.client import UpstreamClient
from ...upstream.errors import MissingCredentialField, NoMatchingChannel, RetryExhausted, UpstreamError
from ...upstream.router_api import RouterApi, find_channel_for
from ..retry import RetryPolicy
from .base import BatchRunner

logger = logging.getLogger(__name__)

ROUTER_NOT_CONFIGURED = "model sync router is not configured"


def default_retry_policy() -> RetryPolicy:
    cfg = settings.model_sync
    return RetryPolicy.from_retries(cfg.max_retries, base_delay=cfg.base_delay, jitter=cfg.jitter)


class ModelSyncRunner(BatchRunner):
    """
    Mirror each account's live model list into its matching router channel.

    Channels are listed once per batch. Accounts without a channel whose base
    URL matches fail immediately; the rest fetch-then-update under the retry
    policy.
    """

    kind = JobKind.model_sync

    def __init__(
        self,
        client: UpstreamClient,
        recorder: HistoryRecorder,
        preferences: PreferenceStore,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        panel_factory: Callable[[UpstreamClient, AccountCredential], PanelApi] = PanelApi,
    ) -> None:
        super().__init__(recorder)
        self.client = client
        self.preferences = preferences
        self.retry_policy = retry_policy or default_retry_policy()
        self.panel_factory = panel_factory

    def router_for(self, prefs: Optional[TenantPreferences]) -> Optional[RouterApi]:
        if prefs is None or not prefs.has_router:
            return None
        return RouterApi(self.client, prefs.router_base_url, prefs.router_token, user_id=prefs.router_user_id)

    async def run(self, tenant_id: str, accounts: Sequence[Account]) -> List[ExecutionRecord]:
        router = self.router_for(await self.preferences.get(tenant_id))
        if router is None:
            logger.warning("%s tenant %s has no router target", self.tag, tenant_id)
            return await self.fan_out(
                accounts, lambda acc: self.record(tenant_id, acc, ExecutionOutcome.failed, ROUTER_NOT_CONFIGURED)
            )

        try:
            channels = await router.list_channels()
        except UpstreamError as e:
            logger.error("%s listing router channels failed for tenant %s: %s", self.tag, tenant_id, e)
            message = f"failed to list router channels: {e}"
            return await self.fan_out(
                accounts, lambda acc: self.record(tenant_id, acc, ExecutionOutcome.failed, message)
            )

        logger.info("%s syncing %d accounts against %d channels", self.tag, len(accounts), len(channels))
        return await self.fan_out(
            accounts,
            lambda acc: self.guarded(tenant_id, acc, lambda: self.sync_account(tenant_id, acc, router, channels)),
        )

    async def sync_account(
        self, tenant_id: str, account: Account, router: RouterApi, channels: Sequence[Channel]
    ) -> ExecutionRecord:
        channel = find_channel_for(channels, account.credential.base_url)
        if channel is None:
            err = NoMatchingChannel(account.credential.normalized_base_url)
            return await self.record(tenant_id, account, ExecutionOutcome.failed, str(err), {"attempts": 0})

        extra = {"channel_id": channel.id, "channel_name": channel.name, "old_models": list(channel.models)}
        try:
            account.credential.validate_for_sync(account_id=account.id)
        except MissingCredentialField as e:
            return await self.record(tenant_id, account, ExecutionOutcome.failed, str(e), {**extra, "attempts": 0})

        panel = self.panel_factory(self.client, account.credential)

        async def attempt() -> List[str]:
            models = await panel.fetch_available_models()
            await router.update_channel_models(channel.id, models)
            return models

        try:
            new_models, attempts = await self.retry_policy.run(attempt, retry_on=(UpstreamError,))
        except RetryExhausted as e:
            logger.warning("%s account %s gave up after %s attempts", self.tag, account.id, e.attempts)
            return await self.record(
                tenant_id, account, ExecutionOutcome.failed, str(e.last_error), {**extra, "attempts": e.attempts}
            )

        return await self.record(
            tenant_id,
            account,
            ExecutionOutcome.success,
            f"synced {len(new_models)} models to channel {channel.name or channel.id}",
            {**extra, "new_models": new_models, "attempts": attempts},
        )
