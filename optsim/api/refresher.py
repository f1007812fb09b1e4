"""
Periodic market-data refresh loop.

At most one refresh task exists at a time: ``start()`` cancels any task it
already owns before creating a new one, so repeated starts never stack
timers. The loop pauses while the view is hidden and resumes on return
if auto-refresh is on.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from optsim.api.service import NotificationLevel, TradingSession
from optsim.derivatives.chain_builder import SpotTick
from optsim.utils.logger import get_logger

logger = get_logger(__name__)


class MarketDataRefresher:
    def __init__(
        self,
        session: TradingSession,
        interval_seconds: Optional[float] = None,
        auto_refresh: Optional[bool] = None,
    ) -> None:
        self.session = session
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None
            else session.settings.refresh_interval_seconds
        )
        self.auto_refresh = session.settings.auto_refresh if auto_refresh is None else auto_refresh
        self.visible = True
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self._task = asyncio.create_task(self._run())
        logger.info("refresher_started", interval_seconds=self.interval_seconds)

    def stop(self) -> None:
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
                logger.info("refresher_stopped", ticks=self.ticks)
            self._task = None

    async def aclose(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def tick(self) -> SpotTick:
        """Refresh once, outside the timer."""
        spot_tick = await self.session.refresh_market_data()
        self.ticks += 1
        return spot_tick

    def toggle(self) -> bool:
        self.auto_refresh = not self.auto_refresh
        if self.auto_refresh:
            if self.visible:
                self.start()
            self.session.notify(NotificationLevel.INFO, "Auto-refresh Enabled", "Market data will update automatically")
        else:
            self.stop()
            self.session.notify(NotificationLevel.INFO, "Auto-refresh Disabled", "Click refresh to update data manually")
        return self.auto_refresh

    def set_visible(self, visible: bool) -> None:
        self.visible = visible
        if not visible:
            self.stop()
        elif self.auto_refresh and not self.is_running:
            self.start()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.tick()
            except Exception as e:
                logger.error("market_refresh_error", error=str(e))
