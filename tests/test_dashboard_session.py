import asyncio
import itertools
import unittest

from schemas.futures_analysis import LoadingStatus, RealtimeQuote
from services.ai.futures.analysis_service import FuturesAnalysisService
from services.ai.futures.errors import AnalysisFailed, GatewayError
from services.ai.futures.presentation import advice_tone, share_card
from services.ai.futures.session import DashboardSession
from services.cache.kv_store import MemoryKVStore
from services.history_store import HistoryStore
from tests.fakes import FakeGateway, FixedClock, analysis_text, make_settings


def _session(script, interval_s=30.0):
    ids = itertools.count(1)
    gateway = FakeGateway(script)
    service = FuturesAnalysisService(
        gateway,
        make_settings(),
        clock=FixedClock("2026/3/2 09:30:00"),
        id_factory=lambda: f"id-{next(ids)}",
    )
    kv = MemoryKVStore()
    history = HistoryStore(kv, key="futures_history_v5", capacity=15)
    return DashboardSession(service, history, refresh_interval_s=interval_s), gateway, kv


class TestDashboardSession(unittest.TestCase):
    def test_crude_oil_scenario(self):
        async def _run():
            session, _gateway, _kv = _session([analysis_text("原油", overallScore=78, advice="买入")])
            record = await session.search("原油")
            state = (
                session.status,
                session.history.load()[0].id,
                session.refresher.is_running,
                session.refresher.interval_s,
                session.refresher.target_id,
                session.snapshot().adviceTone,
            )
            await session.aclose()
            return record, state

        record, (status, first_id, running, interval, target_id, tone) = asyncio.run(_run())
        self.assertEqual(record.overallScore, 78)
        self.assertEqual(record.advice, "买入")
        self.assertEqual(len(record.scores), 5)
        self.assertIs(status, LoadingStatus.COMPLETED)
        self.assertEqual(first_id, record.id)
        self.assertTrue(running)
        self.assertEqual(interval, 30.0)
        self.assertEqual(target_id, record.id)
        self.assertEqual(tone, advice_tone("买入"))

    def test_failed_search_sets_error_and_stops_refresh(self):
        async def _run():
            session, _gateway, _kv = _session([
                analysis_text("原油"),
                GatewayError("API key not valid"),
            ])
            await session.search("原油")
            with self.assertRaises(AnalysisFailed):
                await session.search("黄金")
            return session

        session = asyncio.run(_run())
        self.assertIs(session.status, LoadingStatus.ERROR)
        self.assertEqual(session.error, "API key not valid")
        self.assertIsNone(session.result)
        self.assertFalse(session.refresher.is_running)
        # the earlier success stays in history
        self.assertEqual([h.commodity for h in session.list_history()], ["原油"])

    def test_deeply_nested_output_fails_search_cleanly(self):
        async def _run():
            session, gateway, _kv = _session(["[" * 100000 + "]" * 100000])
            with self.assertRaises(AnalysisFailed):
                await session.search("原油")
            return session, gateway

        session, gateway = asyncio.run(_run())
        self.assertIs(session.status, LoadingStatus.ERROR)
        self.assertTrue(session.error)
        self.assertIsNone(session.result)
        self.assertEqual(gateway.models, ["deep-model"])

    def test_unexpected_service_error_still_ends_in_error_state(self):
        async def _boom(commodity):
            raise RuntimeError("event loop hiccup")

        async def _run():
            session, _gateway, _kv = _session([])
            session.service.analyze = _boom
            with self.assertRaises(AnalysisFailed) as ctx:
                await session.search("原油")
            return session, ctx.exception

        session, error = asyncio.run(_run())
        self.assertIsInstance(error.__cause__, RuntimeError)
        self.assertIs(session.status, LoadingStatus.ERROR)
        self.assertEqual(session.error, "分析服务异常，请稍后再试。")
        self.assertFalse(session.refresher.is_running)

    def test_quote_for_displayed_record_is_merged(self):
        async def _run():
            session, _gateway, _kv = _session([analysis_text("原油")])
            record = await session.search("原油")
            merged = session.apply_quote(record.id, RealtimeQuote(currentPrice="600", timestamp="T2"))
            await session.aclose()
            return record, merged, session.result

        record, merged, current = asyncio.run(_run())
        self.assertTrue(merged)
        self.assertEqual(current.currentPrice, "600")
        self.assertEqual(current.timestamp, "T2")
        self.assertEqual(current.id, record.id)
        self.assertEqual(current.conclusionLogic, record.conclusionLogic)

    def test_stale_quote_is_discarded_after_record_changes(self):
        async def _run():
            session, _gateway, _kv = _session([analysis_text("原油"), analysis_text("黄金")])
            oil = await session.search("原油")
            gold = await session.search("黄金")
            merged = session.apply_quote(oil.id, RealtimeQuote(currentPrice="1", timestamp="T9"))
            await session.aclose()
            return gold, merged, session.result

        gold, merged, current = asyncio.run(_run())
        self.assertFalse(merged)
        self.assertEqual(current, gold)

    def test_background_refresh_updates_displayed_price(self):
        async def _run():
            session, _gateway, _kv = _session(
                [analysis_text("原油"), '{"currentPrice": "612.5"}'],
                interval_s=0.01,
            )
            record = await session.search("原油")
            for _ in range(50):
                await asyncio.sleep(0.01)
                if session.result.currentPrice == "612.5":
                    break
            await session.aclose()
            return record, session.result

        record, current = asyncio.run(_run())
        self.assertEqual(current.currentPrice, "612.5")
        self.assertEqual(current.scores, record.scores)

    def test_dismiss_clears_display_and_stops_refresh(self):
        async def _run():
            session, _gateway, _kv = _session([analysis_text("原油")])
            await session.search("原油")
            session.dismiss()
            return session

        session = asyncio.run(_run())
        self.assertIs(session.status, LoadingStatus.IDLE)
        self.assertIsNone(session.result)
        self.assertFalse(session.refresher.is_running)
        self.assertIsNone(session.share())

    def test_open_from_history_redisplays_verbatim_and_resumes_refresh(self):
        async def _run():
            session, _gateway, _kv = _session([analysis_text("原油"), analysis_text("黄金")])
            oil = await session.search("原油")
            await session.search("黄金")
            reopened = session.open_from_history(oil.id)
            missing = session.open_from_history("nope")
            state = (session.result, session.refresher.target_id, session.refresher.is_running)
            await session.aclose()
            return oil, reopened, missing, state

        oil, reopened, missing, (current, target_id, running) = asyncio.run(_run())
        self.assertEqual(reopened, oil)
        self.assertEqual(current, oil)
        self.assertEqual(target_id, oil.id)
        self.assertTrue(running)
        self.assertIsNone(missing)

    def test_clear_history_removes_store_key(self):
        async def _run():
            session, _gateway, kv = _session([analysis_text("原油")])
            await session.search("原油")
            session.clear_history()
            await session.aclose()
            return session, kv

        session, kv = asyncio.run(_run())
        self.assertEqual(session.list_history(), [])
        self.assertNotIn("futures_history_v5", kv)

    def test_blank_search_does_not_touch_state(self):
        session, gateway, _kv = _session([])
        with self.assertRaises(AnalysisFailed):
            asyncio.run(session.search("   "))
        self.assertIs(session.status, LoadingStatus.IDLE)
        self.assertEqual(gateway.calls, [])

    def test_connectivity_test_delegates_to_probe(self):
        session, _gateway, _kv = _session(["pong"])
        result = asyncio.run(session.run_connectivity_test())
        self.assertTrue(result.success)


class TestPresentation(unittest.TestCase):
    def test_advice_tones(self):
        self.assertIn("red-600", advice_tone("强力买入"))
        self.assertIn("rose-500", advice_tone("买入"))
        self.assertIn("emerald-600", advice_tone("强力卖出"))
        self.assertIn("emerald-600", advice_tone("卖出"))
        self.assertIn("slate-600", advice_tone("观望"))
        self.assertIn("blue-600", advice_tone("未知"))

    def test_share_card_text(self):
        async def _run():
            session, _gateway, _kv = _session([analysis_text("原油")])
            record = await session.search("原油")
            card = session.share()
            await session.aclose()
            return record, card

        record, card = asyncio.run(_run())
        self.assertEqual(card, share_card(record))
        self.assertEqual(card.title, "原油")
        self.assertEqual(card.text, "📊 【智谱期货 Pro】研报：原油 | 评分：78 | 建议：买入")


if __name__ == "__main__":
    unittest.main()
