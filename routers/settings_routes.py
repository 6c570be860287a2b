from fastapi import APIRouter, Depends, Request

from routers.futures_routes import get_session
from schemas.futures_analysis import ConnectionTestResult, CredentialStatus
from services.ai.futures.session import DashboardSession

router = APIRouter(tags=["settings"])


@router.get("/connection", response_model=ConnectionTestResult)
async def test_connection(session: DashboardSession = Depends(get_session)):
    """One-click connectivity test against the primary model."""
    return await session.run_connectivity_test()


@router.get("/credential", response_model=CredentialStatus)
async def credential_status(request: Request):
    """Whether a Gemini credential is configured. Never returns the key itself."""
    settings = request.app.state.settings
    return CredentialStatus(configured=settings.credential_configured, vertex=settings.use_vertex)
