"""Single-account sync: concurrent fetch plus the last-known-good policy."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .core.database.interfaces import AccountStore
from .panel import PanelApi
from .schemas.domain import (
    Account,
    AccountCredential,
    AccountSnapshot,
    CheckinConfig,
    CheckinProbe,
    FetchedAccountData,
)
from .upstream.client import UpstreamClient

logger = logging.getLogger(__name__)

PanelFactory = Callable[[UpstreamClient, AccountCredential], PanelApi]


async def _no_probe() -> CheckinProbe:
    return CheckinProbe.unknown


class AccountSyncer:
    """
    Fetch and persist account snapshots.

    Args:
        client: Shared ``UpstreamClient``.
        accounts: Store used by ``sync`` to persist snapshots.
        panel_factory: Builds the ``PanelApi`` for a credential; overridable in tests.
    """

    def __init__(
        self,
        client: UpstreamClient,
        accounts: Optional[AccountStore] = None,
        *,
        panel_factory: PanelFactory = PanelApi,
    ) -> None:
        self.client = client
        self.accounts = accounts
        self.panel_factory = panel_factory

    async def fetch_account_snapshot(
        self,
        credential: AccountCredential,
        checkin_config: Optional[CheckinConfig] = None,
        *,
        account_id: Optional[str] = None,
    ) -> FetchedAccountData:
        """
        Fetch quota, today's usage and income (and the check-in probe) concurrently.

        Args:
            credential: Account credential; validated before any request.
            checkin_config: Check-in settings; defaults to the credential's own.
            account_id: Only used for error messages.

        Returns:
            FetchedAccountData: Merged result; ``is_checked_in_today`` is derived from the probe.

        Raises:
            MissingCredentialField: Before any network call.
            UpstreamError: When quota, usage or income fails.
        """
        credential.validate_for_sync(account_id=account_id)
        config = checkin_config or credential.checkin_config
        panel = self.panel_factory(self.client, credential)

        probe = (
            panel.probe_checkin_status()
            if config.enable_detection and not config.custom_checkin_url
            else _no_probe()
        )
        quota, usage, income, probe_result = await asyncio.gather(
            panel.fetch_quota(),
            panel.fetch_today_usage(),
            panel.fetch_today_income(),
            probe,
        )
        return FetchedAccountData(quota=quota, usage=usage, income=income, checkin_probe=probe_result)

    async def sync(self, account: Account) -> AccountSnapshot:
        """
        Refresh one account and persist the outcome.

        On success all numeric fields are replaced and health becomes healthy.
        On failure only health and the sync time change, then the error is re-raised.
        """
        config = account.credential.checkin_config
        try:
            fetched = await self.fetch_account_snapshot(account.credential, config, account_id=account.id)
        except Exception:
            failed = account.snapshot.with_failure()
            await self._persist(account, failed, None)
            raise

        snapshot = account.snapshot.with_success(fetched)
        new_config = None
        if fetched.is_checked_in_today is not None:
            new_config = config.model_copy(update={"is_checked_in_today": fetched.is_checked_in_today})
        await self._persist(account, snapshot, new_config)
        logger.debug("AccountSyncer.sync: %s quota=%s", account.id, snapshot.quota)
        return snapshot

    async def _persist(
        self, account: Account, snapshot: AccountSnapshot, checkin_config: Optional[CheckinConfig]
    ) -> None:
        if self.accounts is None:
            return
        updated = await self.accounts.update_snapshot(account.id, account.tenant_id, snapshot, checkin_config)
        if not updated:
            logger.warning("AccountSyncer: account %s vanished before its snapshot was saved", account.id)
