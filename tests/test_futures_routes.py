import itertools
import unittest

from fastapi.testclient import TestClient

from main import create_app
from middleware.rate_limit import limiter
from services.ai.futures.analysis_service import FuturesAnalysisService
from services.ai.futures.errors import GatewayError
from services.ai.futures.session import DashboardSession
from services.cache.kv_store import MemoryKVStore
from services.history_store import HistoryStore
from tests.fakes import FakeGateway, FixedClock, analysis_text, make_settings


class TestFuturesRoutes(unittest.TestCase):
    def setUp(self):
        limiter.enabled = False
        ids = itertools.count(1)
        self.gateway = FakeGateway()
        self.settings = make_settings()
        service = FuturesAnalysisService(
            self.gateway,
            self.settings,
            clock=FixedClock("2026/3/2 09:30:00"),
            id_factory=lambda: f"id-{next(ids)}",
        )
        self.session = DashboardSession(service, HistoryStore(MemoryKVStore()), refresh_interval_s=30)
        self.client = TestClient(create_app(self.settings, session=self.session))
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        limiter.enabled = True

    def test_search_returns_record_and_updates_current(self):
        self.gateway.script = [analysis_text("原油")]
        r = self.client.post("/api/futures/search", json={"commodity": " 原油 "})
        self.assertEqual(r.status_code, 200, r.text)
        body = r.json()
        self.assertEqual(body["commodity"], "原油")
        self.assertEqual(body["id"], "id-1")
        self.assertEqual(body["timestamp"], "2026/3/2 09:30:00")

        current = self.client.get("/api/futures/current").json()
        self.assertEqual(current["status"], "completed")
        self.assertEqual(current["result"]["id"], "id-1")
        self.assertIn("rose-500", current["adviceTone"])

    def test_blank_commodity_is_422(self):
        r = self.client.post("/api/futures/search", json={"commodity": "   "})
        self.assertEqual(r.status_code, 422)
        self.assertEqual(self.gateway.calls, [])

    def test_failed_analysis_is_502_with_message(self):
        self.gateway.script = [GatewayError("API key not valid")]
        r = self.client.post("/api/futures/search", json={"commodity": "原油"})
        self.assertEqual(r.status_code, 502)
        self.assertEqual(r.json()["detail"], "API key not valid")
        self.assertEqual(self.client.get("/api/futures/current").json()["status"], "error")

    def test_history_open_and_clear(self):
        self.gateway.script = [analysis_text("原油"), analysis_text("黄金")]
        self.client.post("/api/futures/search", json={"commodity": "原油"})
        self.client.post("/api/futures/search", json={"commodity": "黄金"})

        history = self.client.get("/api/futures/history").json()
        self.assertEqual([h["commodity"] for h in history], ["黄金", "原油"])

        r = self.client.post("/api/futures/history/id-1/open")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self.client.get("/api/futures/current").json()["result"]["commodity"], "原油")

        self.assertEqual(self.client.post("/api/futures/history/nope/open").status_code, 404)

        self.assertEqual(self.client.delete("/api/futures/history").json(), {"cleared": True})
        self.assertEqual(self.client.get("/api/futures/history").json(), [])

    def test_share_requires_displayed_record(self):
        self.assertEqual(self.client.get("/api/futures/share").status_code, 404)
        self.gateway.script = [analysis_text("原油")]
        self.client.post("/api/futures/search", json={"commodity": "原油"})
        card = self.client.get("/api/futures/share").json()
        self.assertEqual(card["title"], "原油")
        self.assertIn("建议：买入", card["text"])

        dismissed = self.client.delete("/api/futures/current").json()
        self.assertEqual(dismissed["status"], "idle")
        self.assertEqual(self.client.get("/api/futures/share").status_code, 404)

    def test_settings_connection_and_credential(self):
        self.gateway.script = [GatewayError("network unreachable")]
        probe = self.client.get("/api/settings/connection").json()
        self.assertEqual(probe, {"success": False, "message": "network unreachable", "latencyMs": None})

        cred = self.client.get("/api/settings/credential").json()
        self.assertEqual(cred, {"configured": True, "vertex": False})
        self.assertNotIn("test-key", str(cred))

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
