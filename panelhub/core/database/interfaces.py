from __future__ import annotations

"""Storage collaborator contracts.

The scheduler, syncer and history recorder depend on these Protocols instead
of a concrete persistence implementation.

Contract guidelines
-------------------

- All methods are async.
- Implementations must not leak sessions or transactions to callers.
- Every read and write is scoped by ``tenant_id``; an account id belonging to
  another tenant behaves like an unknown id.
- The execution record store is append-only: there is no update or delete.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from ...schemas.domain import (
    Account,
    AccountSnapshot,
    CheckinConfig,
    ExecutionOutcome,
    ExecutionRecord,
    JobKind,
    RecordPage,
    TenantPreferences,
)


class AccountStore(Protocol):
    """Read accounts and persist their snapshots."""

    async def list_accounts(self, tenant_id: str) -> List[Account]:
        """
        List every account of a tenant.

        Args:
            tenant_id: The owning tenant.

        Returns:
            Accounts in creation order.
        """
        ...

    async def get_account(self, account_id: str, tenant_id: str) -> Optional[Account]:
        """
        Retrieve one account.

        Returns:
            The account, or None when unknown or owned by another tenant.
        """
        ...

    async def list_auto_refresh_account_ids(self, tenant_id: str) -> List[str]:
        """Ids of the tenant's accounts with auto-refresh enabled."""
        ...

    async def update_snapshot(
        self,
        account_id: str,
        tenant_id: str,
        snapshot: AccountSnapshot,
        checkin_config: Optional[CheckinConfig] = None,
    ) -> bool:
        """
        Replace the cached snapshot of an account.

        Args:
            account_id: The account to update.
            tenant_id: The owning tenant.
            snapshot: The new snapshot, written as a unit.
            checkin_config: Optional replacement check-in config.

        Returns:
            True when a row was updated, False for an unknown account.
        """
        ...


class PreferenceStore(Protocol):
    """Per-tenant scheduling preferences."""

    async def get(self, tenant_id: str) -> Optional[TenantPreferences]:
        """Preferences of one tenant, or None when never saved."""
        ...

    async def list_all(self) -> List[TenantPreferences]:
        """Preferences of every tenant; used by boot reconciliation."""
        ...


class ExecutionRecordStore(Protocol):
    """Append-only ledger of job outcomes."""

    async def append(self, record: ExecutionRecord) -> None:
        """
        Append one record.

        Args:
            record: The immutable execution record.
        """
        ...

    async def list(
        self,
        tenant_id: str,
        *,
        job_kind: Optional[JobKind] = None,
        account_id: Optional[str] = None,
        outcome: Optional[ExecutionOutcome] = None,
        since: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> RecordPage:
        """
        Page through a tenant's records, newest first.

        Args:
            tenant_id: The owning tenant.
            job_kind: Optional job kind filter.
            account_id: Optional account filter.
            outcome: Optional outcome filter.
            since: Only records at or after this instant.
            page: 1-based page number.
            page_size: Records per page.

        Returns:
            A page of records plus the total count.
        """
        ...
