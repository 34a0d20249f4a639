from .base import BaseSchema
from .domain import (
    Account,
    AccountCredential,
    AccountSnapshot,
    AuthType,
    BillingKind,
    Channel,
    CheckinConfig,
    CheckinProbe,
    ExecutionOutcome,
    ExecutionRecord,
    FetchedAccountData,
    HealthStatus,
    IncomeTotals,
    JobKind,
    ModelPricingEntry,
    PanelUser,
    PricingCatalog,
    QuotaReading,
    RecordPage,
    TenantPreferences,
    UsageTotals,
)

__all__ = [
    "Account",
    "AccountCredential",
    "AccountSnapshot",
    "AuthType",
    "BaseSchema",
    "BillingKind",
    "Channel",
    "CheckinConfig",
    "CheckinProbe",
    "ExecutionOutcome",
    "ExecutionRecord",
    "FetchedAccountData",
    "HealthStatus",
    "IncomeTotals",
    "JobKind",
    "ModelPricingEntry",
    "PanelUser",
    "PricingCatalog",
    "QuotaReading",
    "RecordPage",
    "TenantPreferences",
    "UsageTotals",
]
