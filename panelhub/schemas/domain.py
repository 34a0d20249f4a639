from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ConfigDict, Field

from ..upstream.errors import MissingCredentialField
from .base import BaseSchema

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class AuthType(str, Enum):
    access_token = "AccessToken"
    cookie = "Cookie"
    none = "None"


class HealthStatus(str, Enum):
    healthy = "healthy"
    warning = "warning"
    error = "error"
    unknown = "unknown"


class JobKind(str, Enum):
    refresh = "refresh"
    checkin = "checkin"
    model_sync = "model_sync"


class ExecutionOutcome(str, Enum):
    success = "success"
    already_checked = "alreadyChecked"
    failed = "failed"
    skipped = "skipped"


class BillingKind(str, Enum):
    token = "token"
    per_call = "perCall"


class CheckinProbe(str, Enum):
    available = "available"
    checked_in = "checked_in"
    unknown = "unknown"


class CheckinConfig(BaseSchema):
    """Per-account check-in settings, stored as free-form JSON.

    Known keys are typed; anything else the frontend stores is kept untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    enable_detection: bool = Field(default=False, alias="enableDetection")
    auto_checkin_enabled: Optional[bool] = Field(default=None, alias="autoCheckInEnabled")
    is_checked_in_today: Optional[bool] = Field(default=None, alias="isCheckedInToday")
    custom_checkin_url: Optional[str] = Field(default=None, alias="customCheckInUrl")
    custom_redeem_url: Optional[str] = Field(default=None, alias="customRedeemUrl")
    last_checkin_date: Optional[str] = Field(default=None, alias="lastCheckInDate")
    open_redeem_with_checkin: Optional[bool] = Field(default=None, alias="openRedeemWithCheckIn")

    @classmethod
    def parse(cls, value: Any) -> "CheckinConfig":
        """Build a config from a dict, a JSON string, an existing config or ``None``.

        Unparseable input falls back to the default config (detection off).
        """
        if value is None or value == "":
            return cls()
        if isinstance(value, CheckinConfig):
            return value
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError as e:
                logger.warning("Failed to parse checkin config: %s", e)
                return cls()
        if not isinstance(value, dict):
            logger.warning("Ignoring checkin config of type %s", type(value).__name__)
            return cls()
        return cls.model_validate(value)

    @property
    def checkin_enabled(self) -> bool:
        return bool(self.enable_detection or self.auto_checkin_enabled)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AccountCredential(BaseSchema):
    base_url: str
    auth_type: AuthType = AuthType.access_token
    access_token: Optional[str] = None
    cookie: Optional[str] = None
    user_id: Optional[int] = None
    exchange_rate: float = 7.0
    site_type: Optional[str] = None
    checkin_config: CheckinConfig = Field(default_factory=CheckinConfig)

    @property
    def normalized_base_url(self) -> str:
        return self.base_url.strip().rstrip("/")

    def validate_for_sync(self, *, account_id: Optional[str] = None) -> None:
        """Fail fast when a field required by the auth mode is missing.

        Raises:
            MissingCredentialField: Before any network call is attempted.
        """
        if not self.base_url or not self.base_url.strip():
            raise MissingCredentialField("base_url", account_id=account_id)
        if self.user_id is None:
            raise MissingCredentialField("user_id", account_id=account_id)
        if self.auth_type == AuthType.access_token and not self.access_token:
            raise MissingCredentialField("access_token", account_id=account_id)
        if self.auth_type == AuthType.cookie and not self.cookie:
            raise MissingCredentialField("cookie", account_id=account_id)


class QuotaReading(BaseSchema):
    quota: int
    used_quota: Optional[int] = None


class UsageTotals(BaseSchema):
    today_quota_consumption: int = 0
    today_prompt_tokens: int = 0
    today_completion_tokens: int = 0
    today_requests_count: int = 0


class IncomeTotals(BaseSchema):
    today_income: int = 0


class FetchedAccountData(BaseSchema):
    """Merged result of one account's concurrent fetches."""

    quota: QuotaReading
    usage: UsageTotals
    income: IncomeTotals
    checkin_probe: CheckinProbe = CheckinProbe.unknown

    @property
    def is_checked_in_today(self) -> Optional[bool]:
        # unknown means "cannot determine", never "not checked in"
        if self.checkin_probe == CheckinProbe.checked_in:
            return True
        if self.checkin_probe == CheckinProbe.available:
            return False
        return None


class AccountSnapshot(BaseSchema):
    """Locally cached, point-in-time view of one account.

    Failed syncs keep the last-known-good numbers; only ``health_status`` and
    ``last_sync_time`` move.
    """

    quota: int = 0
    used_quota: Optional[int] = None
    today_prompt_tokens: int = 0
    today_completion_tokens: int = 0
    today_quota_consumption: int = 0
    today_requests_count: int = 0
    today_income: int = 0
    health_status: HealthStatus = HealthStatus.unknown
    last_sync_time: Optional[int] = None
    is_checked_in_today: Optional[bool] = None

    def with_success(self, fetched: FetchedAccountData, *, synced_at: Optional[int] = None) -> "AccountSnapshot":
        return AccountSnapshot(
            quota=fetched.quota.quota,
            used_quota=fetched.quota.used_quota,
            today_prompt_tokens=fetched.usage.today_prompt_tokens,
            today_completion_tokens=fetched.usage.today_completion_tokens,
            today_quota_consumption=fetched.usage.today_quota_consumption,
            today_requests_count=fetched.usage.today_requests_count,
            today_income=fetched.income.today_income,
            health_status=HealthStatus.healthy,
            last_sync_time=synced_at if synced_at is not None else now_ms(),
            is_checked_in_today=fetched.is_checked_in_today,
        )

    def with_failure(self, *, synced_at: Optional[int] = None) -> "AccountSnapshot":
        return self.model_copy(
            update={
                "health_status": HealthStatus.error,
                "last_sync_time": synced_at if synced_at is not None else now_ms(),
            }
        )


class Account(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    tenant_id: str
    name: Optional[str] = None
    credential: AccountCredential
    snapshot: AccountSnapshot = Field(default_factory=AccountSnapshot)
    auto_refresh_enabled: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.credential.base_url


class TenantPreferences(BaseSchema):
    tenant_id: str
    auto_refresh_enabled: bool = False
    auto_refresh_interval: Optional[int] = 6
    auto_checkin_enabled: bool = False
    router_base_url: Optional[str] = None
    router_token: Optional[str] = None
    router_user_id: Optional[str] = None

    @property
    def has_router(self) -> bool:
        return bool(self.router_base_url and self.router_token)


class ExecutionRecord(BaseSchema):
    """Immutable result of one job run against one account."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    tenant_id: str
    job_kind: JobKind
    account_id: str
    account_name: str
    outcome: ExecutionOutcome
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)

    # model-sync only
    channel_id: Optional[int] = None
    channel_name: Optional[str] = None
    old_models: Optional[List[str]] = None
    new_models: Optional[List[str]] = None
    attempts: Optional[int] = None


class RecordPage(BaseSchema):
    items: List[ExecutionRecord] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 50

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total // self.page_size)


class ModelPricingEntry(BaseSchema):
    model_name: str
    model_description: Optional[str] = None
    billing_kind: BillingKind = BillingKind.token
    input_price: float = 0.0
    output_price: float = 0.0
    model_ratio: float = 1.0
    completion_ratio: float = 1.0
    enable_groups: List[str] = Field(default_factory=list)
    endpoint_types: List[str] = Field(default_factory=list)
    owner_by: Optional[str] = None


class PricingCatalog(BaseSchema):
    entries: List[ModelPricingEntry] = Field(default_factory=list)
    group_ratio: Dict[str, float] = Field(default_factory=dict)
    usable_group: Dict[str, str] = Field(default_factory=dict)


class Channel(BaseSchema):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    name: Optional[str] = None
    base_url: Optional[str] = None
    models: List[str] = Field(default_factory=list)


class PanelUser(BaseSchema):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    username: Optional[str] = None
    access_token: Optional[str] = None
