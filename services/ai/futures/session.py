# services/ai/futures/session.py
"""
Explicit owner of the dashboard state: the displayed analysis, its
loading status, the history handle and the realtime refresh loop.

Every path that changes or clears the displayed record restarts or stops
the refresher, and refresh results are only merged while the displayed
record still carries the id the loop was started for.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from schemas.futures_analysis import (
    ConnectionTestResult,
    FuturesAnalysis,
    LoadingStatus,
    RealtimeQuote,
    SessionSnapshot,
    ShareCard,
    merge_realtime,
)
from services.history_store import HistoryStore

from .analysis_service import FuturesAnalysisService
from .errors import AnalysisFailed
from .presentation import advice_tone, share_card
from .realtime_refresher import RealtimeRefresher

logger = logging.getLogger(__name__)


class DashboardSession:
    def __init__(
        self,
        service: FuturesAnalysisService,
        history: HistoryStore,
        *,
        refresh_interval_s: float = 30.0,
    ):
        self.service = service
        self.history = history
        self.refresher = RealtimeRefresher(service.refresh_price, interval_s=refresh_interval_s)

        self.status: LoadingStatus = LoadingStatus.IDLE
        self.result: Optional[FuturesAnalysis] = None
        self.error: Optional[str] = None
        self._search_seq = 0

    # ── display transitions ─────────────────────────────────────────

    def _display(self, record: FuturesAnalysis) -> None:
        self.result = record
        self.error = None
        self.status = LoadingStatus.COMPLETED
        self.refresher.start(record.id, record.commodity, self.apply_quote)

    def apply_quote(self, target_id: str, quote: RealtimeQuote) -> bool:
        if (
            self.status is not LoadingStatus.COMPLETED
            or self.result is None
            or self.result.id != target_id
        ):
            return False
        self.result = merge_realtime(self.result, quote)
        return True

    def _fail(self, seq: int, message: str) -> None:
        if seq != self._search_seq:
            return
        self.status = LoadingStatus.ERROR
        self.error = message
        self.result = None

    async def search(self, commodity: str) -> FuturesAnalysis:
        target = (commodity or "").strip()
        if not target:
            raise AnalysisFailed("请输入期货品种名称")

        self._search_seq += 1
        seq = self._search_seq
        self.refresher.stop()
        self.status = LoadingStatus.SEARCHING
        self.error = None

        try:
            record = await self.service.analyze(target)
        except AnalysisFailed as e:
            self._fail(seq, str(e))
            raise
        except Exception as e:
            logger.exception("session.search.unexpected commodity=%s", target)
            failure = AnalysisFailed("分析服务异常，请稍后再试。")
            self._fail(seq, failure.reason)
            raise failure from e

        if seq != self._search_seq:
            # A newer search started while this one was in flight.
            logger.info("session.search.superseded commodity=%s id=%s", target, record.id)
            return record

        self.history.save(record)
        self._display(record)
        return record

    def open_from_history(self, analysis_id: str) -> Optional[FuturesAnalysis]:
        record = self.history.get(analysis_id)
        if record is None:
            return None
        self._search_seq += 1
        self._display(record)
        logger.info("session.history.opened id=%s commodity=%s", record.id, record.commodity)
        return record

    def dismiss(self) -> None:
        self._search_seq += 1
        self.refresher.stop()
        self.result = None
        self.error = None
        self.status = LoadingStatus.IDLE

    # ── history / share / diagnostics ───────────────────────────────

    def list_history(self) -> List[FuturesAnalysis]:
        return self.history.load()

    def clear_history(self) -> None:
        self.history.clear()

    def share(self) -> Optional[ShareCard]:
        if self.result is None:
            return None
        return share_card(self.result)

    async def run_connectivity_test(self) -> ConnectionTestResult:
        return await self.service.test_connection()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self.status,
            result=self.result,
            error=self.error,
            isRefreshing=self.refresher.is_refreshing,
            adviceTone=advice_tone(self.result.advice) if self.result else None,
        )

    async def aclose(self) -> None:
        await self.refresher.aclose()
