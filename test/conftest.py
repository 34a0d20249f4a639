from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

import httpx
import pytest
from dotenv import load_dotenv

from panelhub.core.database.sql import (
    SqlStoreBundle,
    build_sql_stores,
    create_all,
    create_engine,
    create_sessionmaker,
)
from panelhub.history.recorder import HistoryRecorder
from panelhub.upstream.client import UpstreamClient

TEST_ROOT = Path(__file__).resolve().parent
# optional local overrides (e.g. PANELHUB_LOG_LEVEL=DEBUG); real environment wins
load_dotenv(TEST_ROOT / ".env", override=False)

PANEL_URL = "http://mock-panel"
ROUTER_URL = "http://mock-router"


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
        "/",
    )

    orig_sync = httpx._client.Client.request
    orig_async = httpx._client.AsyncClient.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    async def offline_async(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return await orig_async(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard (async): {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    monkeypatch.setattr(httpx._client.AsyncClient, "request", offline_async, raising=True)


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], UpstreamClient]:
    """Build an ``UpstreamClient`` whose transport is the given handler."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> UpstreamClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
        return UpstreamClient(timeout=5.0, client=http)

    return _make


@pytest.fixture
async def db_engine():
    """In-memory SQLite database with all tables created."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def stores(db_engine) -> SqlStoreBundle:
    return build_sql_stores(session_factory=create_sessionmaker(db_engine))


@pytest.fixture
def recorder(stores: SqlStoreBundle) -> HistoryRecorder:
    return HistoryRecorder(stores.records)
