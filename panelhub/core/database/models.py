from __future__ import annotations

"""SQLAlchemy ORM models for panelhub persistence.

These ORM models define the SQL schema used by the SQL store implementation
in ``panelhub.core.database.sql``.

Design
------

- Accounts carry their credential and the flattened cached snapshot, so a
  snapshot write is a single-row update.
- Tenant preferences hold the scheduling switches and the router target.
- Execution records form an append-only ledger.

Table names are prefixed with ``pm_`` to avoid collisions in shared databases.
JSON columns use JSONB on Postgres and plain JSON elsewhere.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AccountRow(Base):
    """Row model for ``pm_accounts``.

    Key fields:

    - ``auth_type``: credential strategy (AccessToken/Cookie/None).
    - ``checkin_config``: free-form JSON, unknown keys preserved.
    - snapshot columns: last-known-good values plus ``health_status``.
    """

    __tablename__ = "pm_accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(128), index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    base_url: Mapped[str] = mapped_column(Text)
    auth_type: Mapped[str] = mapped_column(String(32))
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cookie: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    exchange_rate: Mapped[float] = mapped_column(Float, default=7.0)
    site_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    checkin_config: Mapped[Dict[str, Any]] = mapped_column(JsonType, default=dict)
    auto_refresh_enabled: Mapped[bool] = mapped_column(Boolean, default=False)

    quota: Mapped[int] = mapped_column(BigInteger, default=0)
    used_quota: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    today_prompt_tokens: Mapped[int] = mapped_column(BigInteger, default=0)
    today_completion_tokens: Mapped[int] = mapped_column(BigInteger, default=0)
    today_quota_consumption: Mapped[int] = mapped_column(BigInteger, default=0)
    today_requests_count: Mapped[int] = mapped_column(Integer, default=0)
    today_income: Mapped[int] = mapped_column(BigInteger, default=0)
    health_status: Mapped[str] = mapped_column(String(16), default="unknown")
    last_sync_time: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    is_checked_in_today: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class TenantPreferencesRow(Base):
    """Row model for ``pm_tenant_preferences`` (one row per tenant)."""

    __tablename__ = "pm_tenant_preferences"

    tenant_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    auto_refresh_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_refresh_interval: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    auto_checkin_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    router_base_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    router_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    router_user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ExecutionRecordRow(Base):
    """Row model for ``pm_execution_records``.

    Append-only. Model-sync runs additionally fill the channel columns and
    the before/after model lists.
    """

    __tablename__ = "pm_execution_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(128), index=True)
    job_kind: Mapped[str] = mapped_column(String(32), index=True)
    account_id: Mapped[str] = mapped_column(String(64), index=True)
    account_name: Mapped[str] = mapped_column(String(255))
    outcome: Mapped[str] = mapped_column(String(32))
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    channel_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    channel_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    old_models: Mapped[Optional[List[str]]] = mapped_column(JsonType, nullable=True)
    new_models: Mapped[Optional[List[str]]] = mapped_column(JsonType, nullable=True)
    attempts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
