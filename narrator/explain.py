from __future__ import annotations

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from narrator.dependencies import PromptDep, SettingsDep, VisionProviderDep
from narrator.metrics import Span, log_metrics
from narrator.resilience.watchdog import Deadline, run_with_deadline
from narrator.security.errors import json_error
from providers.openai_vision import DEFAULT_MIME_TYPE, OpenAIError

router = APIRouter()


class ExplainRequest(BaseModel):
    imageBase64: Optional[str] = None
    mimeType: Optional[str] = None


@router.post("/explain")
async def explain_image(
    payload: ExplainRequest,
    settings: SettingsDep,
    provider: VisionProviderDep,
    prompt: PromptDep,
) -> JSONResponse:
    """Describe an uploaded image as a short spoken lecture."""
    if not payload.imageBase64:
        return json_error(400, "imageBase64 is required")

    if not provider.configured:
        return json_error(500, "Missing OPENAI_API_KEY")

    mime_type = payload.mimeType or DEFAULT_MIME_TYPE
    span = Span()
    try:
        explanation = await run_with_deadline(
            provider.explain,
            payload.imageBase64,
            prompt=prompt,
            deadline=Deadline(settings.upstream_timeout_sec),
            mime_type=mime_type,
        )
    except OpenAIError as exc:
        log_metrics(settings, {"route": "explain", "status": exc.status_code, "upstream_ms": round(span.duration_ms, 2)})
        return json_error(exc.status_code, "Explain failed", exc.detail)
    except Exception as exc:
        logger.exception("Explain request failed: {}", exc)
        log_metrics(settings, {"route": "explain", "status": 500, "upstream_ms": round(span.duration_ms, 2)})
        return json_error(500, "Explain failed", str(exc) or exc.__class__.__name__)

    log_metrics(settings, {"route": "explain", "status": 200, "upstream_ms": round(span.duration_ms, 2)})
    return JSONResponse({"explanation": explanation})
