from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from narrator.dependencies import SettingsDep, TTSProviderDep, VisionProviderDep
from narrator.static_site import web_root_status

router = APIRouter()


def _vendor_status(configured: bool, missing: str) -> Dict[str, Any]:
    if configured:
        return {"configured": True, "status": "configured"}
    return {"configured": False, "status": "not_configured", "message": f"{missing} not configured"}


@router.get("/health")
def healthcheck(settings: SettingsDep, tts: TTSProviderDep, vision: VisionProviderDep) -> Dict[str, Any]:
    """Configuration report; never calls a vendor."""
    elevenlabs_status = _vendor_status(tts.configured, "ELEVENLABS_API_KEY or ELEVENLABS_VOICE_ID")
    openai_status = _vendor_status(vision.configured, "OPENAI_API_KEY")
    web_root = web_root_status(settings.web_root)

    issues = []
    if not elevenlabs_status["configured"]:
        issues.append("ElevenLabs API not configured")
    if not openai_status["configured"]:
        issues.append("OpenAI API not configured")
    if not web_root["index"]:
        issues.append("SPA index document missing")

    return {
        "status": "degraded" if issues else "healthy",
        "issues": issues,
        "elevenlabs": elevenlabs_status,
        "openai": openai_status,
        "security": {
            "auth_token": bool(settings.auth_token),
            "max_body_mb": settings.max_body_mb,
            "max_image_mb": settings.max_image_mb,
        },
        "web_root": web_root,
    }
