from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from ..core.config import settings
from .errors import UpstreamAuthOrRouting, UpstreamUnavailable
from .identity import Identity

DEFAULT_HEADERS: Dict[str, str] = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
}


@dataclass
class UpstreamResponse:
    """Status, headers and decoded body of one panel response.

    ``body`` is the decoded JSON value when the payload parses, otherwise the
    raw text.
    """

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == 200


def looks_like_html(content_type: str, text: str) -> bool:
    ct = content_type.lower()
    if "text/html" in ct and "application/json" not in ct:
        return True
    head = text.lstrip()[:32].lower()
    return head.startswith("<!doctype html") or head.startswith("<html")


class UpstreamClient:
    """
    Async HTTP client shared by every panel and router call.

    Responsibilities:
    - attach browser-like default headers and the caller's identity headers
    - return the status for every HTTP answer, including 4xx/5xx
    - turn transport, decoding and invalid-URL failures into ``UpstreamUnavailable``
    - turn redirect loops into ``UpstreamAuthOrRouting``
    - reject HTML pages where JSON was expected with ``UpstreamAuthOrRouting``

    Args:
        timeout: Per-request timeout in seconds.
        user_agent: Value of the ``User-Agent`` header.
        client: Optional pre-built ``httpx.AsyncClient`` (e.g. with a ``MockTransport``).
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        upstream_cfg = settings.upstream
        self.timeout = timeout if timeout is not None else upstream_cfg.timeout
        self.user_agent = user_agent or upstream_cfg.user_agent
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        self._logger = logging.getLogger(__name__)

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _merge_headers(self, identity: Optional[Identity], headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
        merged: Dict[str, str] = dict(DEFAULT_HEADERS)
        merged["User-Agent"] = self.user_agent
        if identity is not None:
            merged.update(identity.headers())
        if headers:
            merged.update(headers)
        return merged

    async def send(
        self,
        target: str,
        method: str = "GET",
        *,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        identity: Optional[Identity] = None,
        expect_json: bool = True,
    ) -> UpstreamResponse:
        """
        Send one request to a panel or the router.

        Args:
            target: Absolute URL.
            method: HTTP method.
            headers: Caller headers; they override defaults and identity headers.
            body: JSON-serializable request body.
            params: Query parameters.
            identity: Credential headers to attach.
            expect_json: When True, an HTML reply is treated as an auth/routing failure.

        Returns:
            UpstreamResponse: The status is returned as is, 4xx/5xx included.

        Raises:
            UpstreamUnavailable: On DNS, connect, timeout, decoding or invalid-URL failures.
            UpstreamAuthOrRouting: On a redirect loop, or when ``expect_json`` and the reply is an HTML page.
        """
        merged = self._merge_headers(identity, headers)
        self._logger.debug("UpstreamClient.send: %s %s params=%s", method, target, dict(params or {}))
        try:
            r = await self._client.request(
                method,
                target,
                headers=merged,
                params=dict(params) if params else None,
                json=body,
                timeout=self.timeout,
            )
        except httpx.TooManyRedirects as e:
            # usually a login redirect bouncing back onto itself
            self._logger.warning("UpstreamClient.send: %s %s redirect loop: %s", method, target, e)
            raise UpstreamAuthOrRouting(
                f"Too many redirects from {target}; the credential may have expired or the URL may be wrong",
                url=target,
            ) from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            self._logger.warning("UpstreamClient.send: %s %s failed: %s", method, target, e)
            raise UpstreamUnavailable(f"Request to {target} failed: {e}", url=target) from e

        content_type = r.headers.get("content-type", "")
        text = r.text
        if expect_json and looks_like_html(content_type, text):
            self._logger.error(
                "UpstreamClient.send: HTML page instead of JSON url=%s final_url=%s status=%s content_type=%s auth_header=%s",
                target,
                str(r.url),
                r.status_code,
                content_type,
                "Authorization" in merged,
            )
            raise UpstreamAuthOrRouting(
                f"Received an HTML page instead of JSON from {target}; the credential may have expired or the URL may be wrong",
                url=target,
                status_code=r.status_code,
                details=text[:200],
            )

        try:
            decoded: Any = json.loads(text) if text else None
        except ValueError:
            decoded = text
        self._logger.debug("UpstreamClient.send: %s %s -> %s", method, target, r.status_code)
        return UpstreamResponse(status=r.status_code, headers=dict(r.headers), body=decoded, url=str(r.url))
