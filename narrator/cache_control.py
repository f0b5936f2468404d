from __future__ import annotations

from pathlib import PurePosixPath

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from narrator.api_paths import is_api_path

NO_CACHE = "no-cache, no-store, must-revalidate"
SHORT_CACHE = "public, max-age=3600, must-revalidate"
IMMUTABLE = "public, max-age=31536000, immutable"


def cache_policy_for(path: str) -> str:
    """Cache-Control value for a static path, picked by file extension."""
    suffix = PurePosixPath(path).suffix.lower()
    # Extension-less paths resolve to the SPA document
    if suffix in {"", ".html"}:
        return NO_CACHE
    if suffix in {".js", ".css"}:
        return SHORT_CACHE
    return IMMUTABLE


class CacheControlMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, skip_paths: tuple = ()) -> None:
        super().__init__(app)
        self.skip_paths = frozenset(skip_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        path = request.url.path
        if request.method not in {"GET", "HEAD"} or is_api_path(path) or path in self.skip_paths:
            return response
        if response.status_code >= 400 or "cache-control" in response.headers:
            return response
        # SPA fallback serves the index document under arbitrary paths
        if response.headers.get("content-type", "").startswith("text/html"):
            response.headers["Cache-Control"] = NO_CACHE
        else:
            response.headers["Cache-Control"] = cache_policy_for(path)
        return response
