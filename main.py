# main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config.logging_config import configure_logging
from config.settings import FuturesSettings
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.futures_routes import router as futures_router
from routers.settings_routes import router as settings_router
from services.ai.futures.analysis_service import FuturesAnalysisService
from services.ai.futures.session import DashboardSession
from services.ai.gemini_gateway import GeminiGateway
from services.cache.kv_store import build_kv_store
from services.history_store import HistoryStore

logger = logging.getLogger(__name__)


def build_session(settings: FuturesSettings) -> DashboardSession:
    service = FuturesAnalysisService(GeminiGateway(settings), settings)
    history = HistoryStore(
        build_kv_store(settings.redis_url, settings.redis_prefix),
        key=settings.history_key,
        capacity=settings.history_capacity,
    )
    return DashboardSession(service, history, refresh_interval_s=settings.refresh_interval_s)


def create_app(
    settings: Optional[FuturesSettings] = None,
    session: Optional[DashboardSession] = None,
) -> FastAPI:
    settings = settings or FuturesSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.session = session or build_session(settings)
        logger.info(
            "app.startup primary_model=%s fast_model=%s refresh_interval_s=%s",
            settings.primary_model, settings.fast_model, settings.refresh_interval_s,
        )
        try:
            yield
        finally:
            await app.state.session.aclose()
            logger.info("app.shutdown")

    app = FastAPI(title="Futures Insight", lifespan=lifespan)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(futures_router, prefix="/api/futures")
    app.include_router(settings_router, prefix="/api/settings")
    app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


configure_logging()
app = create_app()
