"""Tolerant parsing of heterogeneous panel payloads into domain values."""

from .checkin import classify_checkin_reply, interpret_checkin_status
from .logs import aggregate_log_pages, today_window
from .pricing import extract_model_names, normalize_pricing_family_a, normalize_pricing_family_b
from .quota import DEFAULT_QUOTA_EXTRACTORS, extract_quota, extract_used_quota

__all__ = [
    "DEFAULT_QUOTA_EXTRACTORS",
    "aggregate_log_pages",
    "classify_checkin_reply",
    "extract_model_names",
    "extract_quota",
    "extract_used_quota",
    "interpret_checkin_status",
    "normalize_pricing_family_a",
    "normalize_pricing_family_b",
    "today_window",
]
