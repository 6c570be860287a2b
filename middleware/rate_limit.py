# middleware/rate_limit.py
"""
Rate limiting configuration using slowapi.

Usage in route files:
    from middleware.rate_limit import limiter, ANALYZE_RATE_LIMIT

    @router.post("/search")
    @limiter.limit(ANALYZE_RATE_LIMIT)
    async def search(request: Request, ...):
        ...

Every full analysis costs a grounded call to the deep model, so the
search endpoint carries a tighter limit than the default.
"""
import logging
import os

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def _get_rate_limit_key(request: Request) -> str:
    """
    Bucket by client IP. Client-supplied headers such as X-Client-Id are
    ignored; rotating them would otherwise reset the search limit.
    """
    return get_remote_address(request)


# ─── Default limits ────────────────────────────────────────────────
# Env-overridable so you can tune per-environment without redeploying.
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")
ANALYZE_RATE_LIMIT = os.getenv("RATE_LIMIT_ANALYZE", "10/minute")

limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
)
