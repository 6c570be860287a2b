# services/ai/futures/response_parser.py
"""
Turn raw model text into a validated analysis payload.

Out-of-range scores are clamped to [0, 100] rather than rejected; model
output drifts and a 101 should not cost the user a whole analysis.
Only the four required fields can fail a record. Optional narrative and
nested fields are coerced into shape or dropped.
"""
from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from schemas.futures_analysis import ADVICE_LABELS, FuturesAnalysis, clamp_score
from services.ai.json_helpers import extract_json_object

from .errors import IncompleteResponse, MalformedResponse

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("commodity", "overallScore", "advice", "scores")

NARRATIVE_FIELDS = (
    "currentPrice",
    "conclusionLogic",
    "fundamentalAnalysis",
    "supplyDemandAnalysis",
    "inventoryAnalysis",
    "basisAnalysis",
    "sentimentAnalysis",
    "positionAnalysis",
    "futurePrediction",
)

_INDICATOR_FIELDS = ("macd", "signal", "hist", "k", "d", "j")

# Longest label first so "强力买入" is not read as "买入".
_ADVICE_BY_LENGTH = sorted(ADVICE_LABELS, key=len, reverse=True)
# "不建议买入" must not be read as "买入".
_ADVICE_NEGATIONS = ("不", "勿", "避免", "别")


def parse_json_payload(text: Optional[str]) -> Dict[str, Any]:
    if not (text or "").strip():
        raise MalformedResponse("Model returned an empty response")
    try:
        return extract_json_object(text or "")
    except (ValueError, RecursionError) as e:
        raise MalformedResponse(f"Model response is not a JSON object: {type(e).__name__}: {e}"[:500]) from e


def coerce_score(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("分%").strip()
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return clamp_score(round(num))


def _coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def normalize_advice(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text in ADVICE_LABELS:
        return text
    if any(neg in text for neg in _ADVICE_NEGATIONS):
        return None
    for label in _ADVICE_BY_LENGTH:
        if label in text:
            return label
    return None


def _normalize_scores(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    out: List[Dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        dimension = as_text(item.get("dimension")).strip()
        score = coerce_score(item.get("score"))
        if not dimension or score is None:
            continue
        out.append({
            "dimension": dimension,
            "score": score,
            "reasoning": as_text(item.get("reasoning")),
        })
    return out


def _normalize_hotspots(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    hotspots = raw.get("currentHotspots")
    if isinstance(hotspots, str):
        hotspots = [hotspots] if hotspots.strip() else []
    elif isinstance(hotspots, list):
        hotspots = [as_text(h) for h in hotspots if h not in (None, "")]
    else:
        hotspots = []
    return {
        "currentHotspots": hotspots,
        "linkageLogic": as_text(raw.get("linkageLogic")),
        "crossMarketAdvice": as_text(raw.get("crossMarketAdvice")),
    }


def _normalize_trend_point(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    time_label = as_text(raw.get("time")).strip()
    price = _coerce_float(raw.get("price"))
    if not time_label or price is None:
        return None
    point: Dict[str, Any] = {"time": time_label, "price": price}
    for name in _INDICATOR_FIELDS:
        value = _coerce_float(raw.get(name))
        if value is not None:
            point[name] = value
    return point


def _normalize_technical(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    trend = raw.get("trendData")
    points = [_normalize_trend_point(p) for p in trend] if isinstance(trend, list) else []
    kept = [p for p in points if p is not None]
    if isinstance(trend, list) and len(kept) < len(trend):
        logger.info("futures.parse.trend_points_dropped count=%s", len(trend) - len(kept))
    return {
        "waveAnalysis": as_text(raw.get("waveAnalysis")),
        "macdAnalysis": as_text(raw.get("macdAnalysis")),
        "trendData": kept,
    }


def validate_analysis_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check the minimum fields and normalize them in a copy of `payload`.
    Raises IncompleteResponse when the result would not be usable.
    """
    missing = [f for f in REQUIRED_FIELDS if payload.get(f) in (None, "", [])]
    if missing:
        raise IncompleteResponse(f"Model response missing required fields: {', '.join(missing)}")

    data = {k: v for k, v in payload.items() if v is not None}
    data["commodity"] = as_text(data["commodity"]).strip()
    if not data["commodity"]:
        raise IncompleteResponse("Model response missing required fields: commodity")

    overall = coerce_score(data["overallScore"])
    if overall is None:
        raise IncompleteResponse(f"overallScore is not numeric: {data['overallScore']!r}")
    data["overallScore"] = overall

    advice = normalize_advice(data["advice"])
    if advice is None:
        raise IncompleteResponse(f"advice is not a known strategy label: {data['advice']!r}")
    data["advice"] = advice

    scores = _normalize_scores(data["scores"])
    if not scores:
        raise IncompleteResponse("scores contains no usable dimension entries")
    data["scores"] = scores

    for name in NARRATIVE_FIELDS:
        if name in data:
            data[name] = as_text(data[name])

    for name, normalize in (
        ("hotspotLinkage", _normalize_hotspots),
        ("technicalAnalysis", _normalize_technical),
    ):
        if name not in data:
            continue
        value = normalize(data[name])
        if value is None:
            logger.info("futures.parse.field_dropped field=%s type=%s", name, type(data[name]).__name__)
            del data[name]
        else:
            data[name] = value
    return data


def build_analysis(
    payload: Dict[str, Any],
    *,
    analysis_id: str,
    timestamp: str,
    sources: List[Dict[str, str]],
) -> FuturesAnalysis:
    """Stamp identity, freshness and citations onto a validated payload."""
    data = validate_analysis_payload(payload)
    data.update({"id": analysis_id, "timestamp": timestamp, "sources": sources})
    try:
        return FuturesAnalysis.model_validate(data)
    except ValidationError as e:
        logger.warning("futures.parse.schema_mismatch errors=%s", e.error_count())
        raise IncompleteResponse(f"Model response does not match the analysis schema: {e}") from e
