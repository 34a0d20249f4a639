"""Quota and used-quota extraction from heterogeneous ``/api/user/self`` payloads.

Extraction is an ordered list of strategies; the first one that yields a
value wins. The named-field strategies cover every panel family seen so far.
The two heuristic strategies are a last resort for unknown forks and are
deterministic: ``KeywordNumericField`` takes the first matching key in input
order and ``MaxNumericField`` breaks ties by input order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence, Tuple

from ..upstream.errors import UpstreamShapeError

logger = logging.getLogger(__name__)


def is_number(value: Any) -> bool:
    # bool is an int subclass; panels use it for flags, never for amounts
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def as_units(value: Any) -> int:
    """Coerce a numeric panel amount into integer quota units."""
    if is_number(value):
        return int(round(value))
    return 0


class QuotaExtractor(Protocol):
    name: str

    def extract(self, payload: Mapping[str, Any]) -> Optional[float]: ...


@dataclass(frozen=True)
class NamedField:
    """Read a number at a dotted path such as ``data.quota``."""

    path: str

    @property
    def name(self) -> str:
        return self.path

    def extract(self, payload: Mapping[str, Any]) -> Optional[float]:
        node: Any = payload
        for part in self.path.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return None
            node = node[part]
        return node if is_number(node) else None


@dataclass(frozen=True)
class KeywordNumericField:
    """First non-negative numeric top-level field whose key contains a keyword."""

    keywords: Tuple[str, ...] = ("quota", "balance")

    @property
    def name(self) -> str:
        return f"keyword{self.keywords}"

    def extract(self, payload: Mapping[str, Any]) -> Optional[float]:
        for key, value in payload.items():
            if not is_number(value) or value < 0:
                continue
            lowered = str(key).lower()
            if any(k in lowered for k in self.keywords):
                return value
        return None


@dataclass(frozen=True)
class MaxNumericField:
    """Largest non-negative numeric top-level value."""

    @property
    def name(self) -> str:
        return "max_numeric"

    def extract(self, payload: Mapping[str, Any]) -> Optional[float]:
        best: Optional[float] = None
        for value in payload.values():
            if not is_number(value) or value < 0:
                continue
            # strict comparison keeps the first key on ties
            if best is None or value > best:
                best = value
        return best


DEFAULT_QUOTA_EXTRACTORS: Tuple[QuotaExtractor, ...] = (
    NamedField("quota"),
    NamedField("data.quota"),
    NamedField("account_info.quota"),
    NamedField("balance"),
    NamedField("remain_quota"),
    KeywordNumericField(("quota", "balance")),
    MaxNumericField(),
)

USED_QUOTA_EXTRACTORS: Tuple[QuotaExtractor, ...] = (
    NamedField("used_quota"),
    NamedField("data.used_quota"),
    NamedField("account_info.used_quota"),
    NamedField("total_consumption"),
    NamedField("data.total_consumption"),
)


def extract_quota(payload: Any, extractors: Sequence[QuotaExtractor] = DEFAULT_QUOTA_EXTRACTORS) -> int:
    """
    Run the extractor chain over a user-info payload.

    Args:
        payload: Decoded JSON body.
        extractors: Ordered strategies; defaults to ``DEFAULT_QUOTA_EXTRACTORS``.

    Returns:
        int: Remaining quota in quota units.

    Raises:
        UpstreamShapeError: When the payload is not an object or nothing matched.
    """
    if not isinstance(payload, Mapping):
        raise UpstreamShapeError(f"Quota payload is not a JSON object: {type(payload).__name__}", details=payload)
    for extractor in extractors:
        value = extractor.extract(payload)
        if value is not None:
            if extractor.name not in ("quota", "data.quota", "account_info.quota"):
                logger.debug("extract_quota: matched via %s", extractor.name)
            return as_units(value)
    raise UpstreamShapeError("No quota field found in payload", details=list(payload.keys()))


def extract_used_quota(payload: Any) -> Optional[int]:
    if not isinstance(payload, Mapping):
        return None
    for extractor in USED_QUOTA_EXTRACTORS:
        value = extractor.extract(payload)
        if value is not None:
            return as_units(value)
    return None
