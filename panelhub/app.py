"""
Application wiring.

Builds the engine, stores, HTTP client and scheduler from ``Settings`` and
exposes a ``lifespan`` context that restores timers on startup and stops them
on shutdown. A route layer embeds this the same way it would embed a
database pool.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial
from typing import AsyncIterator, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from .core.config import Settings, settings as default_settings
from .core.database.sql import SqlStoreBundle, build_sql_stores, create_all, create_engine, create_sessionmaker
from .core.logging_config import get_logger, setup_logging
from .history.recorder import HistoryRecorder
from .panel import PanelApi
from .scheduler.retry import RetryPolicy
from .scheduler.service import Scheduler
from .upstream.client import UpstreamClient

logger = get_logger(__name__)


@dataclass
class PanelHub:
    """Everything a running instance owns."""

    engine: AsyncEngine
    stores: SqlStoreBundle
    client: UpstreamClient
    recorder: HistoryRecorder
    scheduler: Scheduler

    async def aclose(self) -> None:
        await self.scheduler.shutdown()
        await self.client.aclose()
        await self.engine.dispose()


async def build_app(
    cfg: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    create_tables: bool = True,
) -> PanelHub:
    """
    Build a ``PanelHub`` from settings.

    Args:
        cfg: Settings; defaults to the module-level instance.
        http_client: Optional pre-built ``httpx.AsyncClient`` for the upstream client.
        create_tables: Create missing tables (dev/tests).
    """
    cfg = cfg or default_settings
    engine = create_engine(cfg.database_url)
    if create_tables:
        await create_all(engine)
    stores = build_sql_stores(session_factory=create_sessionmaker(engine))
    upstream_cfg = cfg.upstream
    client = UpstreamClient(timeout=upstream_cfg.timeout, user_agent=upstream_cfg.user_agent, client=http_client)
    recorder = HistoryRecorder(stores.records)
    sched_cfg = cfg.scheduler
    sync_cfg = cfg.model_sync
    scheduler = Scheduler(
        client,
        stores.accounts,
        stores.preferences,
        recorder,
        retry_policy=RetryPolicy.from_retries(
            sync_cfg.max_retries, base_delay=sync_cfg.base_delay, jitter=sync_cfg.jitter
        ),
        panel_factory=partial(PanelApi, page_size=sched_cfg.log_page_size, max_pages=sched_cfg.log_max_pages),
        refresh_interval_minutes=sched_cfg.refresh_interval_minutes,
        checkin_interval_hours=sched_cfg.checkin_interval_hours,
    )
    return PanelHub(engine=engine, stores=stores, client=client, recorder=recorder, scheduler=scheduler)


@asynccontextmanager
async def lifespan(cfg: Optional[Settings] = None, **kwargs) -> AsyncIterator[PanelHub]:
    """Start up (logging, tables, boot reconciliation) and shut down cleanly."""
    cfg = cfg or default_settings
    setup_logging(cfg.log_level, cfg.log_format, cfg.log_file_dir)
    logger.info("Starting panelhub...")
    hub = await build_app(cfg, **kwargs)
    try:
        restored = await hub.scheduler.reconcile_on_boot()
        logger.info("panelhub started; %d refresh timers restored", restored)
        yield hub
    finally:
        logger.info("Shutting down panelhub...")
        await hub.aclose()
