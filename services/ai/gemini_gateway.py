from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Protocol

from config.settings import FuturesSettings
from services.ai.futures.errors import GatewayError

logger = logging.getLogger(__name__)

ResponseFormat = Literal["json", "text"]

_MIME_TYPES: Dict[str, str] = {
    "json": "application/json",
    "text": "text/plain",
}


@dataclass
class GenerateConfig:
    enable_search_grounding: bool = False
    response_format: ResponseFormat = "text"
    temperature: Optional[float] = None
    response_schema: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        if self.temperature is not None and not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        if self.response_format not in _MIME_TYPES:
            raise ValueError(f"unsupported response_format {self.response_format!r}")


@dataclass
class GatewayResponse:
    text: str
    # Raw chunks as {"web": {"title", "uri"}} or {} for non-web chunks.
    grounding_chunks: List[Dict[str, Any]] = field(default_factory=list)


class ModelGateway(Protocol):
    async def generate(self, model: str, contents: Any, config: GenerateConfig) -> GatewayResponse:
        """One outbound call. Raises GatewayError; never retries."""


def _grounding_chunks(resp: Any) -> List[Dict[str, Any]]:
    candidates = getattr(resp, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    out: List[Dict[str, Any]] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            out.append({})
            continue
        out.append({
            "web": {
                "title": getattr(web, "title", None) or "",
                "uri": getattr(web, "uri", None) or "",
            }
        })
    return out


def _status_code(exc: BaseException) -> Optional[int]:
    for attr in ("code", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


class GeminiGateway:
    """google-genai backed gateway. The SDK call is sync, so it runs in a worker thread."""

    def __init__(self, settings: Optional[FuturesSettings] = None):
        self.settings = settings or FuturesSettings.from_env()
        from google import genai

        if self.settings.use_vertex:
            if not self.settings.gcp_project_id:
                raise ValueError("Missing GCP_PROJECT_ID for Vertex AI")
            self._client = genai.Client(
                vertexai=True,
                project=self.settings.gcp_project_id,
                location=self.settings.gcp_location,
            )
        else:
            if not self.settings.api_key:
                raise ValueError("Missing GEMINI_API_KEY")
            self._client = genai.Client(api_key=self.settings.api_key)

    def _build_config(self, config: GenerateConfig):
        from google.genai import types

        tools = [types.Tool(google_search=types.GoogleSearch())] if config.enable_search_grounding else None
        config_kwargs: Dict[str, Any] = {
            "tools": tools,
            "response_mime_type": _MIME_TYPES[config.response_format],
        }
        if config.temperature is not None:
            config_kwargs["temperature"] = config.temperature
        if config.response_schema is not None:
            config_kwargs["response_schema"] = config.response_schema
        return types.GenerateContentConfig(**config_kwargs)

    def _sync_generate(self, model: str, contents: Any, config: GenerateConfig) -> GatewayResponse:
        resp = self._client.models.generate_content(
            model=model,
            contents=contents,
            config=self._build_config(config),
        )
        return GatewayResponse(
            text=getattr(resp, "text", None) or "",
            grounding_chunks=_grounding_chunks(resp),
        )

    async def generate(self, model: str, contents: Any, config: GenerateConfig) -> GatewayResponse:
        started = time.perf_counter()
        timeout_s = self.settings.gateway_timeout_s or None
        logger.info(
            "gemini.generate.start model=%s grounding=%s format=%s",
            model, config.enable_search_grounding, config.response_format,
        )
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._sync_generate, model, contents, config),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.warning("gemini.generate.timeout model=%s elapsed_ms=%s", model, elapsed_ms)
            raise GatewayError(f"Gemini request timed out after {timeout_s:.0f}s") from e
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.warning(
                "gemini.generate.error model=%s elapsed_ms=%s err=%s",
                model, elapsed_ms, type(e).__name__,
            )
            raise GatewayError(str(e) or type(e).__name__, status_code=_status_code(e)) from e

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "gemini.generate.done model=%s elapsed_ms=%s chars=%s chunks=%s",
            model, elapsed_ms, len(result.text), len(result.grounding_chunks),
            extra={"model": model, "elapsed_ms": elapsed_ms},
        )
        return result
