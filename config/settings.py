# config/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes")


@dataclass
class FuturesSettings:
    # Gemini credential / transport
    api_key: str = ""
    use_vertex: bool = False
    gcp_project_id: str = ""
    gcp_location: str = "us-central1"

    # Model roles: deep analysis vs fast fallback / refresh / probe
    primary_model: str = "gemini-3-pro-preview"
    fast_model: str = "gemini-3-flash-preview"
    analysis_temperature: float = 0.1
    gateway_timeout_s: float = 120.0  # 0 disables

    # Realtime price refresh
    refresh_interval_s: float = 30.0

    # History persistence
    history_key: str = "futures_history_v5"
    history_capacity: int = 15
    redis_url: str = ""
    redis_prefix: str = "futures-insight:"

    # Display
    display_timezone: str = "Asia/Shanghai"

    # HTTP surface
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @property
    def credential_configured(self) -> bool:
        if self.use_vertex:
            return bool(self.gcp_project_id)
        return bool(self.api_key)

    @staticmethod
    def from_env() -> "FuturesSettings":
        origins = os.getenv("CORS_ORIGINS") or "http://localhost:3000"
        return FuturesSettings(
            api_key=(os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or "").strip(),
            use_vertex=_env_bool("GEMINI_USE_VERTEX"),
            gcp_project_id=(
                os.getenv("GCP_PROJECT_ID")
                or os.getenv("GOOGLE_CLOUD_PROJECT")
                or ""
            ).strip(),
            gcp_location=(
                os.getenv("GCP_LOCATION")
                or os.getenv("GOOGLE_CLOUD_LOCATION")
                or "us-central1"
            ).strip(),

            primary_model=os.getenv("GEMINI_PRIMARY_MODEL") or "gemini-3-pro-preview",
            fast_model=os.getenv("GEMINI_FAST_MODEL") or "gemini-3-flash-preview",
            analysis_temperature=float(os.getenv("ANALYSIS_TEMPERATURE", "0.1")),
            gateway_timeout_s=float(os.getenv("GATEWAY_TIMEOUT_S", "120")),

            refresh_interval_s=float(os.getenv("REALTIME_REFRESH_INTERVAL_S", "30")),

            history_key=os.getenv("HISTORY_KEY") or "futures_history_v5",
            history_capacity=int(os.getenv("HISTORY_CAPACITY", "15")),
            redis_url=(os.getenv("REDIS_URL") or "").strip(),
            redis_prefix=os.getenv("REDIS_PREFIX", "futures-insight:"),

            display_timezone=os.getenv("DISPLAY_TIMEZONE") or "Asia/Shanghai",

            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )
