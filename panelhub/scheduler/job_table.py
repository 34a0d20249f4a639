"""Explicit per-(tenant, kind) timer table.

``start`` and ``stop`` contain no ``await``: on a single event loop they are
atomic, so two racing starts for the same key leave exactly one timer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional, Set

from ..schemas.domain import JobKind

logger = logging.getLogger(__name__)

Tick = Callable[[], Awaitable[object]]


class JobKey(NamedTuple):
    tenant_id: str
    kind: JobKind


@dataclass
class ScheduledJob:
    key: JobKey
    interval_seconds: float
    account_ids: Optional[List[str]]
    task: asyncio.Task = field(repr=False)
    ticks: int = 0

    @property
    def running(self) -> bool:
        return not self.task.done()


class JobTable:
    """Owns every live timer of one scheduler instance."""

    def __init__(self) -> None:
        self._jobs: Dict[JobKey, ScheduledJob] = {}
        self._inflight: Set[asyncio.Task] = set()

    def start(
        self,
        key: JobKey,
        interval_seconds: float,
        tick: Tick,
        *,
        account_ids: Optional[List[str]] = None,
        run_immediately: bool = False,
    ) -> ScheduledJob:
        """
        Install a timer for ``key``, replacing any existing one.

        Must be called from a running event loop.

        Args:
            key: Tenant and job kind.
            interval_seconds: Period between ticks.
            tick: Coroutine function run on every tick.
            account_ids: Target accounts, kept for introspection.
            run_immediately: Fire one tick right away instead of after the first period.

        Returns:
            ScheduledJob: The installed job.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._cancel(key)
        task = asyncio.get_running_loop().create_task(
            self._loop(key, interval_seconds, tick, run_immediately),
            name=f"panelhub-{key.kind.value}-{key.tenant_id}",
        )
        job = ScheduledJob(key=key, interval_seconds=interval_seconds, account_ids=account_ids, task=task)
        self._jobs[key] = job
        logger.info("[%s] timer started for tenant %s every %ss", key.kind.value, key.tenant_id, interval_seconds)
        return job

    def stop(self, key: JobKey) -> bool:
        """Cancel the timer for ``key``. Idempotent; in-flight ticks keep running."""
        stopped = self._cancel(key)
        if stopped:
            logger.info("[%s] timer stopped for tenant %s", key.kind.value, key.tenant_id)
        return stopped

    def stop_all(self) -> int:
        keys = list(self._jobs)
        for key in keys:
            self._cancel(key)
        return len(keys)

    def is_running(self, key: JobKey) -> bool:
        job = self._jobs.get(key)
        return job is not None and job.running

    def get(self, key: JobKey) -> Optional[ScheduledJob]:
        return self._jobs.get(key)

    def keys(self) -> List[JobKey]:
        return list(self._jobs)

    async def wait_inflight(self) -> None:
        """Wait for tick tasks already dispatched."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def _cancel(self, key: JobKey) -> bool:
        job = self._jobs.pop(key, None)
        if job is None:
            return False
        job.task.cancel()
        return True

    async def _loop(self, key: JobKey, interval_seconds: float, tick: Tick, run_immediately: bool) -> None:
        if run_immediately:
            self._dispatch(key, tick)
        while True:
            await asyncio.sleep(interval_seconds)
            self._dispatch(key, tick)

    def _dispatch(self, key: JobKey, tick: Tick) -> None:
        job = self._jobs.get(key)
        if job is not None:
            job.ticks += 1
        task = asyncio.get_running_loop().create_task(self._run_tick(key, tick))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run_tick(self, key: JobKey, tick: Tick) -> None:
        try:
            await tick()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[%s] tick failed for tenant %s", key.kind.value, key.tenant_id)
