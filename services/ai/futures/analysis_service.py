# services/ai/futures/analysis_service.py
from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from prometheus_client import Counter

from config.settings import FuturesSettings
from schemas.futures_analysis import ConnectionTestResult, FuturesAnalysis, RealtimeQuote
from services.ai.gemini_gateway import GatewayResponse, GenerateConfig, ModelGateway

from .errors import (
    AnalysisFailed,
    FailureKind,
    FuturesAnalysisError,
    GatewayError,
    IncompleteResponse,
    as_service_error,
    classify,
)
from .prompts import (
    PING_PROMPT,
    REALTIME_PRICE_SCHEMA,
    build_analysis_prompt,
    build_fallback_prompt,
    build_realtime_prompt,
)
from .response_parser import build_analysis, parse_json_payload

logger = logging.getLogger(__name__)

# Metrics
ANALYSIS_TOTAL = Counter(
    "futures_analysis_total",
    "Completed analysis requests by outcome",
    ["outcome"],  # primary | fallback | failed
)
FALLBACK_ATTEMPTS = Counter(
    "futures_analysis_fallback_attempts_total",
    "Analyses retried on the fast model after a transient failure",
)


def display_time(tz_name: str = "Asia/Shanghai", now: Optional[datetime] = None) -> str:
    """zh-CN style wall clock in a fixed zone, e.g. 2026/3/2 09:05:07."""
    current = now or datetime.now(ZoneInfo(tz_name))
    return f"{current.year}/{current.month}/{current.day} {current:%H:%M:%S}"


def extract_sources(chunks: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    for chunk in chunks or []:
        web = chunk.get("web") if isinstance(chunk, dict) else None
        if not web or not web.get("uri"):
            continue
        out.append({"title": web.get("title") or "", "uri": web["uri"]})
    return out


class FuturesAnalysisService:
    """
    Prompt -> gateway -> parser, with one fallback to the fast model on
    transient service errors. Also owns the narrow realtime price query
    and the connectivity probe, which share the same gateway.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        settings: Optional[FuturesSettings] = None,
        *,
        clock: Optional[Callable[[], str]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.gateway = gateway
        self.settings = settings or FuturesSettings.from_env()
        self._clock = clock or (lambda: display_time(self.settings.display_timezone))
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    # ------------------------------------------------------------------
    # Full analysis
    # ------------------------------------------------------------------

    async def analyze(self, commodity: str) -> FuturesAnalysis:
        target = (commodity or "").strip()
        if not target:
            raise AnalysisFailed("请输入期货品种名称")

        current_time = self._clock()
        started = time.perf_counter()
        logger.info(
            "futures.analyze.start commodity=%s model=%s", target, self.settings.primary_model,
            extra={"commodity": target, "model": self.settings.primary_model},
        )

        try:
            record = await self._analyze_primary(target, current_time)
            outcome = "primary"
        except FuturesAnalysisError as e:
            if classify(e) is not FailureKind.TRANSIENT:
                ANALYSIS_TOTAL.labels(outcome="failed").inc()
                logger.warning(
                    "futures.analyze.failed commodity=%s kind=permanent err=%s",
                    target, type(e).__name__,
                )
                raise AnalysisFailed(str(e) or "分析服务异常，请稍后再试。") from e

            FALLBACK_ATTEMPTS.inc()
            logger.warning(
                "futures.analyze.fallback commodity=%s model=%s reason=%s",
                target, self.settings.fast_model, str(e)[:200],
            )
            try:
                record = await self._analyze_fallback(target, current_time)
            except FuturesAnalysisError as fallback_error:
                ANALYSIS_TOTAL.labels(outcome="failed").inc()
                logger.warning(
                    "futures.analyze.fallback_failed commodity=%s err=%s",
                    target, type(fallback_error).__name__,
                )
                raise AnalysisFailed(
                    str(fallback_error) or "分析服务异常，请稍后再试。",
                    kind=FailureKind.TRANSIENT,
                ) from fallback_error
            except Exception as fallback_error:
                raise self._unexpected(target, fallback_error) from fallback_error
            outcome = "fallback"
        except Exception as e:
            raise self._unexpected(target, e) from e

        ANALYSIS_TOTAL.labels(outcome=outcome).inc()
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "futures.analyze.done commodity=%s outcome=%s score=%s advice=%s sources=%s elapsed_ms=%s",
            target, outcome, record.overallScore, record.advice, len(record.sources), elapsed_ms,
            extra={"commodity": target, "outcome": outcome, "analysis_id": record.id, "elapsed_ms": elapsed_ms},
        )
        return record

    def _unexpected(self, commodity: str, error: Exception) -> AnalysisFailed:
        ANALYSIS_TOTAL.labels(outcome="failed").inc()
        logger.exception("futures.analyze.unexpected commodity=%s err=%s", commodity, type(error).__name__)
        return AnalysisFailed("分析服务异常，请稍后再试。")

    async def _call(self, model: str, prompt: str, config: GenerateConfig) -> GatewayResponse:
        try:
            return await self.gateway.generate(model, prompt, config)
        except GatewayError as e:
            raise as_service_error(e) from e

    async def _analyze_primary(self, commodity: str, current_time: str) -> FuturesAnalysis:
        response = await self._call(
            self.settings.primary_model,
            build_analysis_prompt(commodity, current_time),
            GenerateConfig(
                enable_search_grounding=True,
                response_format="json",
                temperature=self.settings.analysis_temperature,
            ),
        )
        payload = parse_json_payload(response.text)
        return build_analysis(
            payload,
            analysis_id=self._new_id(),
            timestamp=current_time,
            sources=extract_sources(response.grounding_chunks),
        )

    async def _analyze_fallback(self, commodity: str, current_time: str) -> FuturesAnalysis:
        # Citation metadata is not extracted on the fallback path.
        response = await self._call(
            self.settings.fast_model,
            build_fallback_prompt(commodity, current_time),
            GenerateConfig(enable_search_grounding=True, response_format="json"),
        )
        payload = parse_json_payload(response.text)
        return build_analysis(
            payload,
            analysis_id=self._new_id(),
            timestamp=current_time,
            sources=[],
        )

    # ------------------------------------------------------------------
    # Realtime price
    # ------------------------------------------------------------------

    async def refresh_price(self, commodity: str) -> RealtimeQuote:
        """Narrow price query. Raises; the refresher decides to swallow."""
        current_time = self._clock()
        response = await self._call(
            self.settings.fast_model,
            build_realtime_prompt(commodity, current_time),
            GenerateConfig(
                enable_search_grounding=True,
                response_format="json",
                response_schema=REALTIME_PRICE_SCHEMA,
            ),
        )
        payload = parse_json_payload(response.text)
        price = payload.get("currentPrice")
        if price in (None, ""):
            raise IncompleteResponse("Realtime response missing currentPrice")
        return RealtimeQuote(currentPrice=str(price), timestamp=current_time)

    # ------------------------------------------------------------------
    # Connectivity probe
    # ------------------------------------------------------------------

    async def test_connection(self) -> ConnectionTestResult:
        started = time.perf_counter()
        try:
            response = await self.gateway.generate(
                self.settings.primary_model, PING_PROMPT, GenerateConfig()
            )
        except Exception as e:
            logger.warning("futures.probe.error err=%s", type(e).__name__)
            return ConnectionTestResult(success=False, message=str(e) or "未知错误")

        latency_ms = int((time.perf_counter() - started) * 1000)
        if (response.text or "").strip():
            logger.info("futures.probe.ok latency_ms=%s", latency_ms)
            return ConnectionTestResult(success=True, message="连接成功", latencyMs=latency_ms)
        return ConnectionTestResult(success=False, message="收到空响应")
