from __future__ import annotations

"""SQLAlchemy async store implementations.

This module provides the SQL-backed implementation of the storage Protocols
defined in ``panelhub.core.database.interfaces``.

Usage
-----

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (tests/dev).
- Create a session factory with ``create_sessionmaker``.
- Build store instances with ``build_sql_stores``.

Transaction model
-----------------

Each store method opens an ``AsyncSession``, performs its operation, and
commits. A snapshot write is therefore durable when ``update_snapshot``
returns.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ...schemas.domain import (
    Account,
    AccountCredential,
    AccountSnapshot,
    AuthType,
    CheckinConfig,
    ExecutionOutcome,
    ExecutionRecord,
    HealthStatus,
    JobKind,
    RecordPage,
    TenantPreferences,
)
from .interfaces import AccountStore, ExecutionRecordStore, PreferenceStore
from .models import AccountRow, Base, ExecutionRecordRow, TenantPreferencesRow


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Postgres URLs are normalized to the asyncpg driver, e.g. ``postgres://``
    becomes ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata (tests/local development)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _account_from_row(row: AccountRow) -> Account:
    return Account(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        auto_refresh_enabled=bool(row.auto_refresh_enabled),
        credential=AccountCredential(
            base_url=row.base_url,
            auth_type=AuthType(row.auth_type),
            access_token=row.access_token,
            cookie=row.cookie,
            user_id=row.user_id,
            exchange_rate=row.exchange_rate if row.exchange_rate is not None else 7.0,
            site_type=row.site_type,
            checkin_config=CheckinConfig.parse(row.checkin_config),
        ),
        snapshot=AccountSnapshot(
            quota=row.quota or 0,
            used_quota=row.used_quota,
            today_prompt_tokens=row.today_prompt_tokens or 0,
            today_completion_tokens=row.today_completion_tokens or 0,
            today_quota_consumption=row.today_quota_consumption or 0,
            today_requests_count=row.today_requests_count or 0,
            today_income=row.today_income or 0,
            health_status=HealthStatus(row.health_status or "unknown"),
            last_sync_time=row.last_sync_time,
            is_checked_in_today=row.is_checked_in_today,
        ),
    )


def _write_snapshot(row: AccountRow, snapshot: AccountSnapshot) -> None:
    row.quota = snapshot.quota
    row.used_quota = snapshot.used_quota
    row.today_prompt_tokens = snapshot.today_prompt_tokens
    row.today_completion_tokens = snapshot.today_completion_tokens
    row.today_quota_consumption = snapshot.today_quota_consumption
    row.today_requests_count = snapshot.today_requests_count
    row.today_income = snapshot.today_income
    row.health_status = snapshot.health_status.value
    row.last_sync_time = snapshot.last_sync_time
    row.is_checked_in_today = snapshot.is_checked_in_today


def _record_from_row(row: ExecutionRecordRow) -> ExecutionRecord:
    return ExecutionRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        job_kind=JobKind(row.job_kind),
        account_id=row.account_id,
        account_name=row.account_name,
        outcome=ExecutionOutcome(row.outcome),
        message=row.message,
        timestamp=_as_utc(row.timestamp),
        channel_id=row.channel_id,
        channel_name=row.channel_name,
        old_models=row.old_models,
        new_models=row.new_models,
        attempts=row.attempts,
    )


@dataclass(frozen=True)
class SqlAccountStore(AccountStore):
    """SQL implementation of ``AccountStore``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, account: Account) -> Account:
        """
        Insert a new account (seeding/onboarding helper).

        Args:
            account: The account to persist, snapshot included.

        Returns:
            The stored account.
        """
        now = _utc_now()
        cred = account.credential
        row = AccountRow(
            id=account.id,
            tenant_id=account.tenant_id,
            name=account.name,
            base_url=cred.base_url,
            auth_type=cred.auth_type.value,
            access_token=cred.access_token,
            cookie=cred.cookie,
            user_id=cred.user_id,
            exchange_rate=cred.exchange_rate,
            site_type=cred.site_type,
            checkin_config=cred.checkin_config.to_json(),
            auto_refresh_enabled=account.auto_refresh_enabled,
            created_at=now,
            updated_at=now,
        )
        _write_snapshot(row, account.snapshot)
        async with self.session_factory() as s:
            s.add(row)
            await s.commit()
        return account

    async def list_accounts(self, tenant_id: str) -> List[Account]:
        async with self.session_factory() as s:
            stmt = select(AccountRow).where(AccountRow.tenant_id == tenant_id).order_by(AccountRow.created_at)
            result = await s.execute(stmt)
            return [_account_from_row(row) for row in result.scalars().all()]

    async def get_account(self, account_id: str, tenant_id: str) -> Optional[Account]:
        async with self.session_factory() as s:
            row = await s.get(AccountRow, account_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            return _account_from_row(row)

    async def list_auto_refresh_account_ids(self, tenant_id: str) -> List[str]:
        async with self.session_factory() as s:
            stmt = (
                select(AccountRow.id)
                .where(AccountRow.tenant_id == tenant_id, AccountRow.auto_refresh_enabled.is_(True))
                .order_by(AccountRow.created_at)
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def update_snapshot(
        self,
        account_id: str,
        tenant_id: str,
        snapshot: AccountSnapshot,
        checkin_config: Optional[CheckinConfig] = None,
    ) -> bool:
        """
        Replace the snapshot columns of one account in a single commit.

        Args:
            account_id: The account to update.
            tenant_id: The owning tenant.
            snapshot: New snapshot.
            checkin_config: Optional replacement check-in config.

        Returns:
            False when the account is unknown for this tenant.
        """
        async with self.session_factory() as s:
            row = await s.get(AccountRow, account_id)
            if row is None or row.tenant_id != tenant_id:
                return False
            _write_snapshot(row, snapshot)
            if checkin_config is not None:
                row.checkin_config = checkin_config.to_json()
            row.updated_at = _utc_now()
            await s.commit()
            return True


@dataclass(frozen=True)
class SqlPreferenceStore(PreferenceStore):
    """SQL implementation of ``PreferenceStore``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def save(self, prefs: TenantPreferences) -> None:
        """Insert or replace a tenant's preferences."""
        async with self.session_factory() as s:
            row = await s.get(TenantPreferencesRow, prefs.tenant_id)
            if row is None:
                row = TenantPreferencesRow(tenant_id=prefs.tenant_id)
                s.add(row)
            row.auto_refresh_enabled = prefs.auto_refresh_enabled
            row.auto_refresh_interval = prefs.auto_refresh_interval
            row.auto_checkin_enabled = prefs.auto_checkin_enabled
            row.router_base_url = prefs.router_base_url
            row.router_token = prefs.router_token
            row.router_user_id = prefs.router_user_id
            row.updated_at = _utc_now()
            await s.commit()

    async def get(self, tenant_id: str) -> Optional[TenantPreferences]:
        async with self.session_factory() as s:
            row = await s.get(TenantPreferencesRow, tenant_id)
            return self._to_domain(row) if row is not None else None

    async def list_all(self) -> List[TenantPreferences]:
        async with self.session_factory() as s:
            result = await s.execute(select(TenantPreferencesRow).order_by(TenantPreferencesRow.tenant_id))
            return [self._to_domain(row) for row in result.scalars().all()]

    @staticmethod
    def _to_domain(row: TenantPreferencesRow) -> TenantPreferences:
        return TenantPreferences(
            tenant_id=row.tenant_id,
            auto_refresh_enabled=bool(row.auto_refresh_enabled),
            auto_refresh_interval=row.auto_refresh_interval,
            auto_checkin_enabled=bool(row.auto_checkin_enabled),
            router_base_url=row.router_base_url,
            router_token=row.router_token,
            router_user_id=row.router_user_id,
        )


@dataclass(frozen=True)
class SqlExecutionRecordStore(ExecutionRecordStore):
    """SQL implementation of ``ExecutionRecordStore`` (append-only)."""

    session_factory: async_sessionmaker[AsyncSession]

    async def append(self, record: ExecutionRecord) -> None:
        async with self.session_factory() as s:
            s.add(
                ExecutionRecordRow(
                    id=record.id,
                    tenant_id=record.tenant_id,
                    job_kind=record.job_kind.value,
                    account_id=record.account_id,
                    account_name=record.account_name,
                    outcome=record.outcome.value,
                    message=record.message,
                    timestamp=_as_utc(record.timestamp),
                    channel_id=record.channel_id,
                    channel_name=record.channel_name,
                    old_models=record.old_models,
                    new_models=record.new_models,
                    attempts=record.attempts,
                )
            )
            await s.commit()

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

        Returns:
            RecordPage: ``items`` for the requested page and the filtered ``total``.
        """
        conditions = [ExecutionRecordRow.tenant_id == tenant_id]
        if job_kind is not None:
            conditions.append(ExecutionRecordRow.job_kind == job_kind.value)
        if account_id is not None:
            conditions.append(ExecutionRecordRow.account_id == account_id)
        if outcome is not None:
            conditions.append(ExecutionRecordRow.outcome == outcome.value)
        if since is not None:
            conditions.append(ExecutionRecordRow.timestamp >= _as_utc(since))

        page = max(page, 1)
        async with self.session_factory() as s:
            total = await s.scalar(select(func.count()).select_from(ExecutionRecordRow).where(*conditions))
            stmt = (
                select(ExecutionRecordRow)
                .where(*conditions)
                .order_by(ExecutionRecordRow.timestamp.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            result = await s.execute(stmt)
            items = [_record_from_row(row) for row in result.scalars().all()]
        return RecordPage(items=items, total=int(total or 0), page=page, page_size=page_size)


@dataclass(frozen=True)
class SqlStoreBundle:
    """Convenience bundle of all SQL stores for dependency injection."""

    accounts: SqlAccountStore
    preferences: SqlPreferenceStore
    records: SqlExecutionRecordStore


def build_sql_stores(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlStoreBundle:
    """Build a ``SqlStoreBundle`` from a session factory."""
    return SqlStoreBundle(
        accounts=SqlAccountStore(session_factory=session_factory),
        preferences=SqlPreferenceStore(session_factory=session_factory),
        records=SqlExecutionRecordStore(session_factory=session_factory),
    )
