"""Periodic scrape-and-collate loop run alongside the HTTP server."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Collection

from aggregator.errors import ScrapeError
from aggregator.scraper import Scraper
from aggregator.storage.base import Storage

logger = logging.getLogger(__name__)


class ScrapeScheduler:
    """Runs the scraper and then collation every ``interval`` seconds.

    A run always completes before the next interval starts, so runs never
    overlap.
    """

    def __init__(self, scraper: Scraper, storage: Storage, interval: float, service_filter: Collection[str]):
        self.scraper = scraper
        self.storage = storage
        self.interval = interval
        self.service_filter = set(service_filter)
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def run_once(self) -> None:
        """Scrape all services and publish a new collation.

        Scrape and collation failures are logged, not raised, so that one bad
        run never takes down the loop. Services that scraped successfully are
        still collated when others failed.
        """
        try:
            await self.scraper.run()
        except ScrapeError as exc:
            logger.error("scrape run failed: %s", exc)
        try:
            await self.storage.collate_versions(self.service_filter)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("collation failed, keeping previous collated versions")

    async def _loop(self) -> None:
        while not self._stop.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("scrape scheduler started, interval %.0fs", self.interval)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self, timeout: float) -> None:
        """Stop scheduling and wait up to ``timeout`` for the in-flight run."""
        self._stop.set()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("in-flight scrape did not finish within %.0fs, cancelling", timeout)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("scrape scheduler stopped")
