from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Query
from fastapi.responses import Response
from loguru import logger
from pydantic import BaseModel, Field

from narrator.dependencies import SettingsDep, TTSProviderDep
from narrator.metrics import Span, log_metrics
from narrator.resilience.watchdog import Deadline, run_with_deadline
from narrator.security.errors import json_error
from providers.elevenlabs_tts import DEFAULT_OUTPUT_FORMAT, ElevenLabsError

router = APIRouter()


class VoiceSettings(BaseModel):
    stability: Optional[float] = None
    similarity_boost: Optional[float] = None
    style: Optional[float] = None
    use_speaker_boost: Optional[bool] = None


class TTSRequest(BaseModel):
    text: Optional[str] = Field(default=None, description="Text to synthesize")
    settings: Optional[VoiceSettings] = None


@router.post("/tts")
async def cloud_tts(
    payload: TTSRequest,
    settings: SettingsDep,
    provider: TTSProviderDep,
    output_format: Optional[str] = Query(default=None, alias="format"),
) -> Response:
    if not payload.text or not payload.text.strip():
        return json_error(400, "text is required")

    if not provider.configured:
        return json_error(500, "Missing ELEVENLABS_API_KEY or ELEVENLABS_VOICE_ID")

    # WAV by default, lip-sync friendly
    fmt = output_format or DEFAULT_OUTPUT_FORMAT
    voice_settings: Dict[str, object] = payload.settings.model_dump(exclude_none=True) if payload.settings else {}

    span = Span()
    try:
        result = await run_with_deadline(
            provider.synthesize,
            payload.text,
            deadline=Deadline(settings.upstream_timeout_sec),
            voice_settings=voice_settings,
            output_format=fmt,
        )
    except ElevenLabsError as exc:
        log_metrics(settings, {"route": "tts", "status": exc.status_code, "upstream_ms": round(span.duration_ms, 2)})
        return json_error(exc.status_code, "TTS failed", exc.detail)
    except Exception as exc:
        logger.exception("TTS request failed: {}", exc)
        log_metrics(settings, {"route": "tts", "status": 500, "upstream_ms": round(span.duration_ms, 2)})
        return json_error(500, "TTS failed", str(exc) or exc.__class__.__name__)

    log_metrics(
        settings,
        {
            "route": "tts",
            "status": 200,
            "upstream_ms": round(span.duration_ms, 2),
            "bytes": len(result.audio),
            "format": fmt,
        },
    )
    return Response(
        content=result.audio,
        media_type=result.media_type,
        headers={
            "Content-Disposition": f'inline; filename="{result.filename}"',
            "X-Audio-Format": fmt,
        },
    )
