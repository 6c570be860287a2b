# services/ai/futures/prompts.py
"""
Prompt templates for the futures research flow.

Three prompts share one output contract:
  - full analysis (deep model, persona + rubric + exact JSON shape)
  - reduced fallback (fast model, same JSON shape, no persona/rubric detail)
  - realtime price (fast model, single-field response schema)
"""
from __future__ import annotations

from typing import Any, Dict

from schemas.futures_analysis import ADVICE_LABELS, SCORE_DIMENSIONS

# ============================================================================
# OUTPUT CONTRACT
# ============================================================================

_DIMENSION_HINTS: Dict[str, str] = {
    "宏观政策": "具体宏观变量及其影响",
    "跨市联动": "外盘/相关品种的联动效应",
    "产业供需": "产能、开工率、下游需求现状",
    "资金情绪": "沉淀资金、持仓兴趣变化",
    "技术形态": "关键位、趋势线、指标状态",
}

_ADVICE_ENUM = "/".join(ADVICE_LABELS)
_DIMENSION_LIST = "、".join(SCORE_DIMENSIONS)


def _scores_block() -> str:
    rows = [
        f'    {{"dimension": "{dim}", "score": 0-100, "reasoning": "{_DIMENSION_HINTS[dim]}"}}'
        for dim in SCORE_DIMENSIONS
    ]
    return ",\n".join(rows)


ANALYSIS_OUTPUT_SHAPE = f"""{{
  "commodity": "品种名称",
  "currentPrice": "最新实时价格",
  "overallScore": 0-100,
  "advice": "{_ADVICE_ENUM}",
  "conclusionLogic": "此处详细说明：综合评估了哪些核心变量？看多/看空的核心矛盾点在哪里？评分背后的逻辑权重是如何分配的？",
  "scores": [
{_scores_block()}
  ],
  "hotspotLinkage": {{
    "currentHotspots": ["热点A", "热点B"],
    "linkageLogic": "逻辑说明",
    "crossMarketAdvice": "操作建议"
  }},
  "fundamentalAnalysis": "深度基本面分析",
  "basisAnalysis": "基差与升贴水逻辑",
  "supplyDemandAnalysis": "供需平衡分析",
  "inventoryAnalysis": "库存周期分析",
  "sentimentAnalysis": "市场博弈情绪",
  "positionAnalysis": "主力头寸分析",
  "futurePrediction": "跨周期预测及风险提示",
  "technicalAnalysis": {{
    "waveAnalysis": "浪形结构说明",
    "macdAnalysis": "指标状态说明",
    "trendData": []
  }}
}}"""


# Response schema for the narrow realtime query (google-genai accepts a dict schema).
REALTIME_PRICE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "currentPrice": {"type": "STRING", "description": "最新的市场报价"},
    },
    "required": ["currentPrice"],
}


# ============================================================================
# BUILDERS
# ============================================================================

def build_analysis_prompt(commodity: str, current_time: str) -> str:
    return f"""当前北京时间是: {current_time}。

作为一名【资深期货首席分析师】，请针对期货品种 "{commodity}" 进行深度全方位研判。

【核心逻辑要求】
1. **增强内部逻辑一致性**：你的评分（overallScore）和建议（advice）必须有严密的推理支持，高分对应看多建议，低分对应看空建议。
2. **解释评分逻辑**：在 "conclusionLogic" 中明确说明为什么给这个分数，以及分数是如何从宏观、产业、资金和技术四个维度加权得出的。
3. **策略归纳**：为什么最终建议是这个（如“强力买入”或“观望”），核心驱动因素是什么。
4. "scores" 必须恰好包含以下五个维度各一项：{_DIMENSION_LIST}；所有分数为 0-100 的整数。
5. "advice" 只能取以下值之一：{_ADVICE_ENUM}。

请严格以 JSON 格式返回，不要附加任何解释文字：
{ANALYSIS_OUTPUT_SHAPE}
"""


def build_fallback_prompt(commodity: str, current_time: str) -> str:
    return f"""当前北京时间是: {current_time}。
深度分析期货品种 "{commodity}"。严格返回 JSON，需包含 conclusionLogic 解释评分逻辑，结构如下：
{ANALYSIS_OUTPUT_SHAPE}
"""


def build_realtime_prompt(commodity: str, current_time: str) -> str:
    return f'获取期货品种 "{commodity}" 的最新成交价格。只需返回当前价格字符串。当前时间: {current_time}'


PING_PROMPT = "ping"
