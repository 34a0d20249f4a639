from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..schemas.domain import Channel
from .client import UpstreamClient
from .errors import UpstreamAuthOrRouting, UpstreamShapeError, UpstreamUnavailable


def split_models(raw: Any) -> List[str]:
    """Parse the router's comma-separated model string into a clean list."""
    if raw is None:
        return []
    if isinstance(raw, list):
        parts = [str(m) for m in raw]
    else:
        parts = str(raw).split(",")
    return [p.strip() for p in parts if p and p.strip()]


class RouterApi:
    """
    Thin client for the router service that owns model-sync channels.

    Responsibilities:
    - list_channels
    - update_channel_models

    Args:
        client: Shared ``UpstreamClient``.
        base_url: Router base URL.
        token: Bearer token of the router admin.
        user_id: Optional router user id sent as ``X-User-Id``.
    """

    def __init__(self, client: UpstreamClient, base_url: str, token: str, *, user_id: Optional[str] = None) -> None:
        self.client = client
        self.base_url = base_url.strip().rstrip("/")
        self.token = token
        self.user_id = user_id
        self._logger = logging.getLogger(__name__)

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Authorization": f"Bearer {self.token}"}
        if self.user_id:
            headers["X-User-Id"] = str(self.user_id)
        return headers

    def _raise_for_status(self, op: str, url: str, status: int, body: Any) -> None:
        if status == 200:
            return
        if status in (401, 403):
            raise UpstreamAuthOrRouting(f"Router {op} rejected: {status}", url=url, status_code=status, details=body)
        raise UpstreamUnavailable(f"Router {op} failed: {status}", url=url, status_code=status, details=body)

    async def list_channels(self, *, page_size: int = 100) -> List[Channel]:
        url = f"{self.base_url}/api/channel/"
        self._logger.debug("RouterApi.list_channels: GET %s", url)
        resp = await self.client.send(url, params={"p": "1", "page_size": str(page_size)}, headers=self._headers())
        self._raise_for_status("list_channels", url, resp.status, resp.body)
        body = resp.body
        if not isinstance(body, dict):
            raise UpstreamShapeError("Unexpected response shape from list_channels", url=url, details=body)
        items = body.get("items")
        if items is None and isinstance(body.get("data"), dict):
            items = body["data"].get("items")
        channels: List[Channel] = []
        for item in items or []:
            if not isinstance(item, dict) or item.get("id") is None:
                continue
            channels.append(
                Channel(
                    id=item["id"],
                    name=item.get("name"),
                    base_url=item.get("base_url"),
                    models=split_models(item.get("models")),
                )
            )
        self._logger.debug("RouterApi.list_channels: got %d channels", len(channels))
        return channels

    async def update_channel_models(self, channel_id: int, models: Sequence[str]) -> None:
        url = f"{self.base_url}/api/channel/"
        self._logger.debug("RouterApi.update_channel_models: PUT %s id=%s models=%d", url, channel_id, len(models))
        resp = await self.client.send(
            url,
            "PUT",
            body={"id": channel_id, "models": ",".join(models)},
            headers=self._headers(),
        )
        self._raise_for_status("update_channel_models", url, resp.status, resp.body)


def find_channel_for(channels: Sequence[Channel], base_url: str) -> Optional[Channel]:
    """Match a channel by base URL, ignoring trailing slashes."""
    wanted = base_url.strip().rstrip("/")
    for ch in channels:
        if ch.base_url and ch.base_url.strip().rstrip("/") == wanted:
            return ch
    return None
