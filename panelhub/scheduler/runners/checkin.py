from __future__ import annotations

import logging
from typing import Callable, List

from ...history.recorder import HistoryRecorder
from ...normalizer.checkin import DEFAULT_CHECKIN_ENDPOINTS, classify_checkin_reply
from ...panel import PanelApi
from ...schemas.domain import Account, AccountCredential, ExecutionOutcome, ExecutionRecord, JobKind
from ...upstream.client import UpstreamClient
from ...upstream.errors import MissingCredentialField, PanelHubError
from .base import BatchRunner

logger = logging.getLogger(__name__)


class CheckinRunner(BatchRunner):
    """
    Perform the daily check-in against each account's panel.

    Candidate endpoints are tried in order; the first HTTP 200 wins and is
    classified. Anything else moves on to the next candidate.
    """

    kind = JobKind.checkin

    def __init__(
        self,
        client: UpstreamClient,
        recorder: HistoryRecorder,
        *,
        panel_factory: Callable[[UpstreamClient, AccountCredential], PanelApi] = PanelApi,
    ) -> None:
        super().__init__(recorder)
        self.client = client
        self.panel_factory = panel_factory

    @staticmethod
    def endpoints_for(account: Account) -> List[str]:
        custom = account.credential.checkin_config.custom_checkin_url
        return [custom] if custom else list(DEFAULT_CHECKIN_ENDPOINTS)

    async def run_account(self, tenant_id: str, account: Account) -> ExecutionRecord:
        config = account.credential.checkin_config
        if not config.checkin_enabled:
            return await self.record(tenant_id, account, ExecutionOutcome.skipped, "check-in detection not enabled")

        try:
            account.credential.validate_for_sync(account_id=account.id)
        except MissingCredentialField as e:
            return await self.record(tenant_id, account, ExecutionOutcome.failed, str(e))

        panel = self.panel_factory(self.client, account.credential)
        for endpoint in self.endpoints_for(account):
            try:
                resp = await panel.attempt_checkin(endpoint)
            except PanelHubError as e:
                logger.debug("%s %s %s failed: %s", self.tag, account.id, endpoint, e)
                continue
            if resp.status != 200:
                logger.debug("%s %s %s answered %s", self.tag, account.id, endpoint, resp.status)
                continue
            outcome, message = classify_checkin_reply(resp.body)
            return await self.record(tenant_id, account, outcome, message)

        logger.warning("%s account %s: all check-in endpoints failed", self.tag, account.id)
        return await self.record(
            tenant_id, account, ExecutionOutcome.failed, "check-in failed on every endpoint; check the account configuration"
        )
