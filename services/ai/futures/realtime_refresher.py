# services/ai/futures/realtime_refresher.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from prometheus_client import Counter

from schemas.futures_analysis import RealtimeQuote

logger = logging.getLogger(__name__)

REFRESH_TOTAL = Counter(
    "futures_realtime_refresh_total",
    "Background price refresh ticks by result",
    ["result"],  # ok | error | stale
)

QuoteFetcher = Callable[[str], Awaitable[RealtimeQuote]]
# Returns False when the displayed record no longer matches target_id.
QuoteSink = Callable[[str, RealtimeQuote], bool]


class RealtimeRefresher:
    """
    One cancellable background loop, bound to the id of the record it
    refreshes. Failures are logged and the loop keeps its cadence.
    """

    def __init__(self, fetch: QuoteFetcher, *, interval_s: float = 30.0):
        if interval_s <= 0:
            raise ValueError("refresh interval must be positive")
        self._fetch = fetch
        self.interval_s = interval_s
        self.is_refreshing = False
        self.target_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, target_id: str, commodity: str, sink: QuoteSink) -> None:
        """Cancel any running loop and start one for `target_id`. Needs a running event loop."""
        self.stop()
        self.target_id = target_id
        self._task = asyncio.create_task(
            self._run(target_id, commodity, sink),
            name=f"realtime-refresh:{target_id}",
        )
        logger.info("realtime.start id=%s commodity=%s interval_s=%s", target_id, commodity, self.interval_s)

    def stop(self) -> None:
        task, self._task = self._task, None
        self.target_id = None
        self.is_refreshing = False
        if task is not None and not task.done():
            task.cancel()
            logger.info("realtime.stop task=%s", task.get_name())

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self, target_id: str, commodity: str, sink: QuoteSink) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            await self.refresh_once(target_id, commodity, sink)

    async def refresh_once(self, target_id: str, commodity: str, sink: QuoteSink) -> bool:
        self.is_refreshing = True
        try:
            quote = await self._fetch(commodity)
        except Exception as e:
            REFRESH_TOTAL.labels(result="error").inc()
            logger.warning("realtime.refresh.error id=%s commodity=%s err=%s", target_id, commodity, e)
            return False
        finally:
            self.is_refreshing = False

        if not sink(target_id, quote):
            REFRESH_TOTAL.labels(result="stale").inc()
            logger.info("realtime.refresh.stale id=%s commodity=%s", target_id, commodity)
            return False

        REFRESH_TOTAL.labels(result="ok").inc()
        logger.debug("realtime.refresh.ok id=%s price=%s", target_id, quote.currentPrice)
        return True
