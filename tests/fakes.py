import json
from typing import Any, Dict, List, Optional

from config.settings import FuturesSettings
from services.ai.gemini_gateway import GatewayResponse


def analysis_payload(commodity: str = "原油", **overrides) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "commodity": commodity,
        "currentPrice": "568.3 元/桶",
        "overallScore": 78,
        "advice": "买入",
        "conclusionLogic": "供给收缩叠加旺季需求，宏观与技术面共振偏多。",
        "scores": [
            {"dimension": "宏观政策", "score": 72, "reasoning": "降息预期升温"},
            {"dimension": "跨市联动", "score": 80, "reasoning": "布伦特同步走强"},
            {"dimension": "产业供需", "score": 85, "reasoning": "OPEC+ 延长减产"},
            {"dimension": "资金情绪", "score": 70, "reasoning": "多头增仓"},
            {"dimension": "技术形态", "score": 76, "reasoning": "突破年线"},
        ],
        "hotspotLinkage": {
            "currentHotspots": ["中东局势", "美联储议息"],
            "linkageLogic": "地缘溢价推升油价",
            "crossMarketAdvice": "关注 SC-Brent 价差",
        },
        "fundamentalAnalysis": "基本面偏强",
        "basisAnalysis": "现货升水",
        "supplyDemandAnalysis": "去库延续",
        "inventoryAnalysis": "库存低位",
        "sentimentAnalysis": "情绪乐观",
        "positionAnalysis": "主力净多",
        "futurePrediction": "短期震荡偏强",
        "technicalAnalysis": {"waveAnalysis": "三浪上行", "macdAnalysis": "金叉", "trendData": []},
    }
    payload.update(overrides)
    return payload


def analysis_text(commodity: str = "原油", **overrides) -> str:
    return json.dumps(analysis_payload(commodity, **overrides), ensure_ascii=False)


def web_chunk(title: str, uri: str) -> Dict[str, Any]:
    return {"web": {"title": title, "uri": uri}}


class FakeGateway:
    """Scripted gateway: each call pops the next response or raises the next exception."""

    def __init__(self, script: Optional[List[Any]] = None):
        self.script = list(script or [])
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if not self.script:
            raise AssertionError("FakeGateway called more often than scripted")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, GatewayResponse):
            return item
        return GatewayResponse(text=item)

    @property
    def models(self) -> List[str]:
        return [c["model"] for c in self.calls]


def make_settings(**overrides) -> FuturesSettings:
    settings = FuturesSettings(
        api_key="test-key",
        primary_model="deep-model",
        fast_model="fast-model",
        gateway_timeout_s=5.0,
        refresh_interval_s=30.0,
    )
    for k, v in overrides.items():
        setattr(settings, k, v)
    return settings


class FixedClock:
    def __init__(self, *values: str):
        self.values = list(values) or ["2026/3/2 09:30:00"]
        self.calls = 0

    def __call__(self) -> str:
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value
