import sys
from pathlib import Path
from typing import Optional

import requests
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from loguru import logger

from narrator.cache_control import CacheControlMiddleware
from narrator.config import Settings, get_settings
from narrator.explain import router as explain_router
from narrator.health import router as health_router
from narrator.prompts import load_explain_prompt
from narrator.security.auth_token import AuthTokenMiddleware, is_enabled
from narrator.security.body_limit import BodyLimitMiddleware
from narrator.security.errors import json_error
from narrator.static_site import SPAStaticFiles
from narrator.tts_cloud import router as tts_router
from providers.elevenlabs_tts import ElevenLabsProvider
from providers.openai_vision import OpenAIVisionProvider


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)


def create_app(
    settings: Optional[Settings] = None,
    *,
    tts_session: Optional[requests.Session] = None,
    vision_session: Optional[requests.Session] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(title="Narrator Proxy", version="0.1.0")
    app.state.settings = settings
    app.state.tts_provider = ElevenLabsProvider(
        api_key=settings.elevenlabs_api_key,
        voice_id=settings.elevenlabs_voice_id,
        base_url=settings.elevenlabs_base_url,
        session=tts_session,
    )
    app.state.vision_provider = OpenAIVisionProvider(
        api_key=settings.openai_api_key,
        model=settings.openai_vision_model,
        base_url=settings.openai_base_url,
        session=vision_session,
    )
    app.state.explain_prompt = load_explain_prompt(settings.explain_prompt_file)

    # Last added runs first: auth, then body limit, then cache headers
    app.add_middleware(CacheControlMiddleware, skip_paths=("/health",))
    app.add_middleware(
        BodyLimitMiddleware,
        default_mb=settings.max_body_mb,
        route_limits_mb={"/explain": settings.max_image_mb},
    )
    if is_enabled(settings):
        app.add_middleware(AuthTokenMiddleware, token=settings.auth_token)
    else:
        logger.warning("AUTH_TOKEN is empty, API endpoints are not protected")

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        messages = "; ".join(str(err.get("msg", "")) for err in exc.errors())
        return json_error(400, "Invalid request body", messages or None)

    app.include_router(health_router)
    app.include_router(tts_router)
    app.include_router(explain_router)

    # Static files and SPA fallback must come after the API routes
    web_root = Path(settings.web_root)
    if web_root.is_dir():
        app.mount("/", SPAStaticFiles(directory=web_root), name="spa")
    else:
        logger.warning("Web root {} does not exist, static files are disabled", web_root)

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    logger.info("Server running on http://{}:{}", settings.bind_host, settings.port)
    uvicorn.run(app, host=settings.bind_host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()


__all__ = ["app", "create_app", "run"]
