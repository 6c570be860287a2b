"""
Type definitions for the futures research dashboard.

The JSON field names follow the camelCase contract the front end and the
model prompt share, so models are declared with camelCase attributes and
round-trip verbatim through the history store.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# LITERALS & CONSTANTS
# ============================================================================

Advice = Literal["强力买入", "买入", "观望", "卖出", "强力卖出"]
ADVICE_LABELS: tuple = get_args(Advice)

# Fixed five-dimension scoring rubric, in presentation order.
SCORE_DIMENSIONS: tuple = ("宏观政策", "跨市联动", "产业供需", "资金情绪", "技术形态")

SCORE_MIN = 0
SCORE_MAX = 100


def clamp_score(value: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, int(value)))


class LoadingStatus(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"


# ============================================================================
# BUILDING BLOCKS
# ============================================================================

class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AnalysisScore(_Record):
    dimension: str = Field(..., min_length=1)
    score: int
    reasoning: str = ""

    @field_validator("score")
    @classmethod
    def _clamp(cls, v: int) -> int:
        return clamp_score(v)


class HotspotLinkage(_Record):
    currentHotspots: List[str] = Field(default_factory=list)
    linkageLogic: str = ""
    crossMarketAdvice: str = ""


class GroundingSource(_Record):
    title: str = ""
    uri: str


class TrendPoint(_Record):
    time: str
    price: float
    macd: Optional[float] = None
    signal: Optional[float] = None
    hist: Optional[float] = None
    k: Optional[float] = None
    d: Optional[float] = None
    j: Optional[float] = None


class TechnicalAnalysis(_Record):
    waveAnalysis: str = ""
    macdAnalysis: str = ""
    trendData: List[TrendPoint] = Field(default_factory=list)


# ============================================================================
# CENTRAL RECORD
# ============================================================================

class FuturesAnalysis(_Record):
    """
    One completed analysis of a commodity.

    `id` and everything except `currentPrice` / `timestamp` are write-once;
    the realtime refresher replaces only those two via `merge_realtime`.
    """
    id: str
    commodity: str = Field(..., min_length=1)
    currentPrice: str = ""
    overallScore: int
    advice: Advice
    conclusionLogic: str = ""
    scores: List[AnalysisScore] = Field(..., min_length=1)

    fundamentalAnalysis: str = ""
    supplyDemandAnalysis: str = ""
    inventoryAnalysis: str = ""
    basisAnalysis: str = ""
    sentimentAnalysis: str = ""
    positionAnalysis: str = ""
    futurePrediction: str = ""

    hotspotLinkage: HotspotLinkage = Field(default_factory=HotspotLinkage)
    technicalAnalysis: TechnicalAnalysis = Field(default_factory=TechnicalAnalysis)
    sources: List[GroundingSource] = Field(default_factory=list)
    timestamp: str

    @field_validator("overallScore")
    @classmethod
    def _clamp_overall(cls, v: int) -> int:
        return clamp_score(v)


class RealtimeQuote(BaseModel):
    currentPrice: str
    timestamp: str


def merge_realtime(record: FuturesAnalysis, quote: RealtimeQuote) -> FuturesAnalysis:
    """Copy of `record` with only the price and freshness marker replaced."""
    return record.model_copy(
        update={"currentPrice": quote.currentPrice, "timestamp": quote.timestamp}
    )


# ============================================================================
# API PAYLOADS
# ============================================================================

class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    latencyMs: Optional[int] = None


class SearchRequest(BaseModel):
    commodity: str = Field(..., max_length=64)

    @field_validator("commodity")
    @classmethod
    def _strip_commodity(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("commodity must not be blank")
        return v


class ShareCard(BaseModel):
    title: str
    text: str


class SessionSnapshot(BaseModel):
    status: LoadingStatus
    result: Optional[FuturesAnalysis] = None
    error: Optional[str] = None
    isRefreshing: bool = False
    adviceTone: Optional[str] = None


class CredentialStatus(BaseModel):
    configured: bool
    vertex: bool
