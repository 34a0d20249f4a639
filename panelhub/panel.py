"""One panel's REST surface, bound to one credential.

``PanelApi`` composes the ``UpstreamClient`` with the normalizers; it owns the
endpoint paths and the status-to-error mapping, nothing else.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from .core.config import settings
from .normalizer.checkin import CHECKIN_STATUS_PATH, interpret_checkin_status
from .normalizer.logs import (
    INCOME_LOG_TYPES,
    LOG_TYPE_CONSUMPTION,
    IncomeAccumulator,
    UsageAccumulator,
    aggregate_log_pages,
    log_query_params,
    today_window,
)
from .normalizer.pricing import (
    FAMILY_B_SITE_TYPES,
    extract_model_names,
    normalize_pricing_family_a,
    normalize_pricing_family_b,
)
from .normalizer.quota import extract_quota, extract_used_quota
from .schemas.domain import (
    AccountCredential,
    AuthType,
    CheckinProbe,
    IncomeTotals,
    PanelUser,
    PricingCatalog,
    QuotaReading,
    UsageTotals,
)
from .upstream.client import UpstreamClient, UpstreamResponse
from .upstream.errors import PanelHubError, UpstreamAuthOrRouting, UpstreamShapeError, UpstreamUnavailable
from .upstream.identity import Identity


def ensure_ok(resp: UpstreamResponse, what: str) -> Any:
    """Return the body of a 200 response, or raise the mapped upstream error."""
    if resp.status in (401, 403):
        raise UpstreamAuthOrRouting(
            f"{what} rejected with status {resp.status}", url=resp.url, status_code=resp.status, details=resp.body
        )
    if resp.status != 200:
        raise UpstreamUnavailable(
            f"{what} failed with status {resp.status}", url=resp.url, status_code=resp.status, details=resp.body
        )
    return resp.body


def resolve_url(base_url: str, path_or_url: str) -> str:
    if path_or_url.startswith(("http://", "https://")):
        return path_or_url
    if not path_or_url.startswith("/"):
        path_or_url = "/" + path_or_url
    return base_url + path_or_url


class PanelApi:
    """
    Endpoints of a single panel, called as a single account.

    Args:
        client: Shared ``UpstreamClient``.
        credential: Account credential; its base URL and identity are used for every call.
        page_size: Log page size.
        max_pages: Log page ceiling.
    """

    def __init__(
        self,
        client: UpstreamClient,
        credential: AccountCredential,
        *,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> None:
        sched_cfg = settings.scheduler
        self.client = client
        self.credential = credential
        self.base_url = credential.normalized_base_url
        self.identity = Identity.from_credential(credential)
        self.page_size = page_size or sched_cfg.log_page_size
        self.max_pages = max_pages or sched_cfg.log_max_pages
        self._logger = logging.getLogger(__name__)

    def url(self, path: str) -> str:
        return resolve_url(self.base_url, path)

    async def _get(self, path: str, *, params: Optional[Mapping[str, Any]] = None, identity: Optional[Identity] = None) -> UpstreamResponse:
        return await self.client.send(self.url(path), params=params, identity=identity or self.identity)

    async def fetch_quota(self) -> QuotaReading:
        body = ensure_ok(await self._get("/api/user/self"), "fetch_quota")
        reading = QuotaReading(quota=extract_quota(body), used_quota=extract_used_quota(body))
        self._logger.debug("PanelApi.fetch_quota: %s quota=%s", self.base_url, reading.quota)
        return reading

    async def _walk_logs(self, log_type: int, consume, window) -> int:
        async def fetch_page(page: int) -> UpstreamResponse:
            return await self._get("/api/log/self", params=log_query_params(page, self.page_size, log_type, window))

        return await aggregate_log_pages(fetch_page, consume, page_size=self.page_size, max_pages=self.max_pages)

    async def fetch_today_usage(self, *, now: Optional[datetime] = None) -> UsageTotals:
        acc = UsageAccumulator()
        pages = await self._walk_logs(LOG_TYPE_CONSUMPTION, acc, today_window(now))
        self._logger.debug("PanelApi.fetch_today_usage: %s pages=%s requests=%s", self.base_url, pages, acc.requests)
        return acc.totals()

    async def fetch_today_income(self, *, now: Optional[datetime] = None) -> IncomeTotals:
        acc = IncomeAccumulator()
        window = today_window(now)
        for log_type in INCOME_LOG_TYPES:
            await self._walk_logs(log_type, acc, window)
        return IncomeTotals(today_income=acc.units)

    async def probe_checkin_status(self) -> CheckinProbe:
        """Never raises; any failure means the state cannot be determined."""
        try:
            resp = await self._get(CHECKIN_STATUS_PATH)
        except PanelHubError as e:
            self._logger.debug("PanelApi.probe_checkin_status: %s unknown (%s)", self.base_url, e)
            return CheckinProbe.unknown
        return interpret_checkin_status(resp)

    async def fetch_available_models(self) -> List[str]:
        body = ensure_ok(await self._get("/api/user/models"), "fetch_available_models")
        return extract_model_names(body)

    async def fetch_pricing(self) -> PricingCatalog:
        if self.credential.site_type in FAMILY_B_SITE_TYPES:
            models_resp, groups_resp = await asyncio.gather(
                self._get("/api/available_model"),
                self._get("/api/user_group_map"),
            )
            return normalize_pricing_family_b(
                ensure_ok(models_resp, "fetch_available_model"),
                ensure_ok(groups_resp, "fetch_user_group_map"),
            )
        return normalize_pricing_family_a(ensure_ok(await self._get("/api/pricing"), "fetch_pricing"))

    async def fetch_user_info(self) -> PanelUser:
        """Read the account's own user record using its session cookie."""
        resp = await self._get("/api/user/self", identity=self.identity.with_auth_type(AuthType.cookie))
        body = ensure_ok(resp, "fetch_user_info")
        if isinstance(body, Mapping) and "id" not in body and isinstance(body.get("data"), Mapping):
            body = body["data"]
        if not isinstance(body, Mapping) or body.get("id") is None:
            raise UpstreamShapeError("User info payload has no id", url=resp.url, details=body)
        return PanelUser(id=body["id"], username=body.get("username"), access_token=body.get("access_token") or None)

    async def fetch_site_status(self) -> Optional[Dict[str, Any]]:
        """Unauthenticated ``/api/status``; ``None`` when unavailable."""
        try:
            resp = await self.client.send(self.url("/api/status"), identity=Identity.anonymous())
        except PanelHubError as e:
            self._logger.debug("PanelApi.fetch_site_status: %s unavailable (%s)", self.base_url, e)
            return None
        if resp.status == 200 and isinstance(resp.body, dict) and resp.body:
            return resp.body
        return None

    async def attempt_checkin(self, endpoint: str) -> UpstreamResponse:
        return await self.client.send(self.url(endpoint), "POST", identity=self.identity)
