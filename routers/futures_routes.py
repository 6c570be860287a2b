# routers/futures_routes.py
"""
FastAPI routes for the futures research dashboard.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from middleware.rate_limit import ANALYZE_RATE_LIMIT, limiter
from schemas.futures_analysis import FuturesAnalysis, SearchRequest, SessionSnapshot, ShareCard
from services.ai.futures.errors import AnalysisFailed
from services.ai.futures.session import DashboardSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["futures"])


def get_session(request: Request) -> DashboardSession:
    return request.app.state.session


# ============================================================================
# ANALYSIS
# ============================================================================

@router.post("/search", response_model=FuturesAnalysis)
@limiter.limit(ANALYZE_RATE_LIMIT)
async def search_commodity(
    request: Request,
    body: SearchRequest,
    session: DashboardSession = Depends(get_session),
):
    """
    Run a full grounded analysis for one commodity and display it.

    The record is saved at the head of history and the realtime price
    loop starts for it.
    """
    try:
        return await session.search(body.commodity)
    except AnalysisFailed as e:
        logger.warning("futures_search_failed commodity=%s kind=%s", body.commodity, e.kind.value)
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/current", response_model=SessionSnapshot)
async def get_current(session: DashboardSession = Depends(get_session)):
    return session.snapshot()


@router.delete("/current", response_model=SessionSnapshot)
async def dismiss_current(session: DashboardSession = Depends(get_session)):
    session.dismiss()
    return session.snapshot()


@router.get("/share", response_model=ShareCard)
async def get_share_card(session: DashboardSession = Depends(get_session)):
    card = session.share()
    if card is None:
        raise HTTPException(status_code=404, detail="No analysis is displayed")
    return card


# ============================================================================
# HISTORY
# ============================================================================

@router.get("/history", response_model=List[FuturesAnalysis])
async def list_history(session: DashboardSession = Depends(get_session)):
    return session.list_history()


@router.post("/history/{analysis_id}/open", response_model=FuturesAnalysis)
async def open_history_entry(analysis_id: str, session: DashboardSession = Depends(get_session)):
    record = session.open_from_history(analysis_id)
    if record is None:
        raise HTTPException(status_code=404, detail="History entry not found")
    return record


@router.delete("/history")
async def clear_history(session: DashboardSession = Depends(get_session)):
    session.clear_history()
    logger.info("futures_history_cleared")
    return {"cleared": True}
