"""Paginated log aggregation for today's usage and income."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Tuple

from ..schemas.domain import UsageTotals
from ..upstream.client import UpstreamResponse
from ..upstream.errors import UpstreamAuthOrRouting
from .quota import is_number, as_units

logger = logging.getLogger(__name__)

LOG_TYPE_CONSUMPTION = 2
LOG_TYPE_RECHARGE = 1
LOG_TYPE_SYSTEM = 5
INCOME_LOG_TYPES: Tuple[int, ...] = (LOG_TYPE_RECHARGE, LOG_TYPE_SYSTEM)

DEFAULT_PAGE_SIZE = 100
MAX_PAGES = 10

INCOME_UNITS_PER_CURRENCY = 1_000_000
_AMOUNT_RE = re.compile(r"[＄$]?(\d+\.?\d*)")

SECONDS_PER_DAY = 86400

FetchPage = Callable[[int], Awaitable[UpstreamResponse]]
ConsumeItems = Callable[[List[Mapping[str, Any]]], None]


def today_window(now: Optional[datetime] = None) -> Tuple[int, int]:
    """Return ``(start, end)`` Unix seconds covering the local calendar day of ``now``.

    A naive ``now`` (the default) is interpreted in the server's local time
    zone; a tz-aware one is honoured as is.
    """
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = int(midnight.timestamp())
    return start, start + SECONDS_PER_DAY - 1


def log_query_params(page: int, page_size: int, log_type: int, window: Tuple[int, int]) -> dict:
    start, end = window
    return {
        "p": str(page),
        "page_size": str(page_size),
        "type": str(log_type),
        "token_name": "",
        "model_name": "",
        "start_timestamp": str(start),
        "end_timestamp": str(end),
        "group": "",
    }


def _page_items(body: Any) -> Tuple[List[Mapping[str, Any]], int]:
    if not isinstance(body, Mapping):
        return [], 0
    container: Mapping[str, Any] = body
    if "items" not in body and isinstance(body.get("data"), Mapping):
        container = body["data"]
    items = container.get("items") or []
    total = container.get("total") or 0
    return [i for i in items if isinstance(i, Mapping)], int(total) if is_number(total) else 0


async def aggregate_log_pages(
    fetch_page: FetchPage,
    consume: ConsumeItems,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = MAX_PAGES,
) -> int:
    """
    Walk log pages 1..N, handing each page's items to ``consume``.

    Stops on the first non-200 page, once ``page >= ceil(total / page_size)``,
    or at ``max_pages``.

    Args:
        fetch_page: Coroutine function returning the response for a 1-based page.
        consume: Callback receiving the item list of each page.
        page_size: Items per page requested from the panel.
        max_pages: Hard ceiling on pages fetched.

    Returns:
        int: Number of pages whose items were consumed.

    Raises:
        UpstreamAuthOrRouting: When a page answers 401/403.
    """
    pages = 0
    page = 1
    while page <= max_pages:
        resp = await fetch_page(page)
        if resp.status in (401, 403):
            raise UpstreamAuthOrRouting(
                f"Log page {page} rejected with status {resp.status}", url=resp.url, status_code=resp.status
            )
        if resp.status != 200 or not resp.body:
            logger.debug("aggregate_log_pages: stopping at page %s status=%s", page, resp.status)
            break
        items, total = _page_items(resp.body)
        consume(items)
        pages += 1
        if page >= math.ceil(total / page_size):
            break
        page += 1
    return pages


class UsageAccumulator:
    """Sums consumption log items into ``UsageTotals``."""

    def __init__(self) -> None:
        self.quota = 0
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.requests = 0

    def __call__(self, items: Iterable[Mapping[str, Any]]) -> None:
        for item in items:
            self.quota += as_units(item.get("quota"))
            self.prompt_tokens += as_units(item.get("prompt_tokens"))
            self.completion_tokens += as_units(item.get("completion_tokens"))
            self.requests += 1

    def totals(self) -> UsageTotals:
        return UsageTotals(
            today_quota_consumption=self.quota,
            today_prompt_tokens=self.prompt_tokens,
            today_completion_tokens=self.completion_tokens,
            today_requests_count=self.requests,
        )


def parse_income_amount(content: Any) -> Optional[float]:
    """Pull the first amount out of free text such as ``"签到奖励 ＄10.586246 额度"``.

    Returns the amount in quota units, or ``None`` when no number is present.
    """
    if not isinstance(content, str):
        return None
    match = _AMOUNT_RE.search(content)
    if not match:
        return None
    return float(match.group(1)) * INCOME_UNITS_PER_CURRENCY


class IncomeAccumulator:
    """Sums recharge/system log items. Shared across both log types."""

    def __init__(self) -> None:
        self.total = 0.0

    def __call__(self, items: Iterable[Mapping[str, Any]]) -> None:
        for item in items:
            quota = item.get("quota")
            if is_number(quota) and quota != 0:
                self.total += quota
                continue
            amount = parse_income_amount(item.get("content"))
            if amount is not None:
                self.total += amount

    @property
    def units(self) -> int:
        return int(round(self.total))
