"""Periodic background jobs — drivers only, no business logic."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any

from marketplace_core.assets.lifecycle import AssetLifecycleManager
from marketplace_core.verification.service import OtpService

logger = logging.getLogger(__name__)


class PeriodicJob(ABC):
    """Runs :meth:`run_once` every *interval* on the event loop.

    Started explicitly at process start and stopped at shutdown.  A run
    that fails is logged and abandoned; the next tick tries again.
    """

    def __init__(self, interval: timedelta) -> None:
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Job name used in logs and as the task name."""

    @abstractmethod
    async def run_once(self) -> Any:
        """Do one unit of work."""

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            logger.warning("%s already running", self.name)
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("%s started (every %ss)", self.name, int(self.interval.total_seconds()))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("%s stopped", self.name)

    async def run_now(self) -> Any:
        """Run one cycle immediately; returns its result, or ``None`` on failure."""
        try:
            return await self.run_once()
        except Exception:
            logger.exception("%s run failed; will retry next cycle", self.name)
            return None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            await self.run_now()


class CleanupScheduler(PeriodicJob):
    """Sweeps orphaned temporary assets once per interval (daily by default)."""

    def __init__(
        self,
        manager: AssetLifecycleManager,
        max_age_hours: float = 24,
        interval: timedelta = timedelta(days=1),
    ) -> None:
        super().__init__(interval)
        self._manager = manager
        self.max_age_hours = max_age_hours

    @property
    def name(self) -> str:
        return "asset-cleanup"

    async def run_once(self) -> int:
        logger.info("Starting cleanup of temporary assets...")
        deleted = await self._manager.sweep_orphans(self.max_age_hours)
        logger.info("Cleanup complete: %d orphaned asset(s) deleted", deleted)
        return deleted


class OtpHousekeeper(PeriodicJob):
    """Drops expired codes and reset rate-limit windows from memory."""

    def __init__(self, service: OtpService, interval: timedelta = timedelta(minutes=5)) -> None:
        super().__init__(interval)
        self._service = service

    @property
    def name(self) -> str:
        return "otp-housekeeping"

    async def run_once(self) -> tuple[int, int]:
        return self._service.purge_expired()
