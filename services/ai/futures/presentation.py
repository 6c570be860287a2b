"""Display helpers shared by the dashboard endpoints."""
from __future__ import annotations

from schemas.futures_analysis import FuturesAnalysis, ShareCard

SHARE_BRAND = "智谱期货 Pro"

# Checked in order; "强力买入" must win over "买入".
_ADVICE_TONES = (
    ("强力买入", "text-red-600 bg-red-50 border-red-200"),
    ("买入", "text-rose-500 bg-rose-50 border-rose-100"),
    ("卖出", "text-emerald-600 bg-emerald-50 border-emerald-200"),
    ("观望", "text-slate-600 bg-slate-50 border-slate-200"),
)
_DEFAULT_TONE = "text-blue-600 bg-blue-50 border-blue-200"


def advice_tone(advice: str) -> str:
    for label, tone in _ADVICE_TONES:
        if label in (advice or ""):
            return tone
    return _DEFAULT_TONE


def share_card(record: FuturesAnalysis) -> ShareCard:
    text = (
        f"📊 【{SHARE_BRAND}】研报：{record.commodity} | "
        f"评分：{record.overallScore} | 建议：{record.advice}"
    )
    return ShareCard(title=record.commodity, text=text)
