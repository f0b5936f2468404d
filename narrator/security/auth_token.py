from __future__ import annotations

from secrets import compare_digest
from typing import TYPE_CHECKING, Optional

from fastapi import Request
from loguru import logger
from starlette import status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from narrator.api_paths import is_api_path
from narrator.security.errors import json_error

if TYPE_CHECKING:
    from narrator.config import Settings

AUTH_HEADER = "x-auth-token"


def mask(value: Optional[str]) -> str:
    if not value:
        return "***"
    visible = value[:4]
    return f"{visible}***"


def is_enabled(settings: Settings) -> bool:
    return bool(settings.auth_token)


def should_protect(path: str) -> bool:
    """
    Determine if a path is an API path guarded by the auth token.

    Matches the prefix itself and anything below it, so ``/tts`` and
    ``/tts/`` are protected while ``/ttsx`` is not.
    """
    return is_api_path(path)


def verify_token(provided: Optional[str], expected: str) -> bool:
    """Exact match of the caller's header against the configured secret."""
    if not expected:
        return True
    if provided is None:
        return False
    try:
        return compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
    except (AttributeError, TypeError):
        return False


def http_unauthorized_response() -> Response:
    return json_error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


class AuthTokenMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, token: str) -> None:
        super().__init__(app)
        self.token = token

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not should_protect(path):
            return await call_next(request)

        provided = request.headers.get(AUTH_HEADER)
        if verify_token(provided, self.token):
            return await call_next(request)

        logger.info("## Auth token rejected path={} token={}", path, mask(provided))
        return http_unauthorized_response()
