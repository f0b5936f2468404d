from __future__ import annotations

from typing import Mapping, Optional

from loguru import logger
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from narrator.api_paths import api_prefix_for
from narrator.security.errors import json_error

MEGABYTE = 1024 * 1024


class _BodyTooLarge(Exception):
    def __init__(self, received: int) -> None:
        super().__init__("request body over limit")
        self.received = received


class BodyLimitMiddleware:
    """
    Caps request bodies per API route.

    ``/explain`` carries a base64 image and gets its own, larger cap; every
    other route falls back to ``default_mb``. Bodies are rejected up front
    from ``Content-Length`` or, for chunked uploads, as soon as the running
    total crosses the cap.
    """

    def __init__(self, app: ASGIApp, *, default_mb: int, route_limits_mb: Optional[Mapping[str, int]] = None) -> None:
        self.app = app
        self.default_bytes = max(1, int(default_mb)) * MEGABYTE
        self.route_bytes = {
            prefix: max(1, int(limit)) * MEGABYTE for prefix, limit in (route_limits_mb or {}).items()
        }

    def limit_for(self, path: str) -> int:
        prefix = api_prefix_for(path)
        return self.route_bytes.get(prefix, self.default_bytes) if prefix else self.default_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] in {"GET", "HEAD", "OPTIONS"}:
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        limit = self.limit_for(path)
        declared = _declared_length(scope)
        if declared is not None and declared > limit:
            logger.info("Body rejected path={} declared={} limit={}", path, declared, limit)
            await self._reject(scope, receive, send)
            return

        received = 0
        over_limit = False
        response_started = False

        async def counting_receive() -> Message:
            nonlocal received, over_limit
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    over_limit = True
                    raise _BodyTooLarge(received)
            return message

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            # Body parsing errors surface as a 400 from the route; answer 413 instead
            if over_limit:
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, counting_receive, guarded_send)
        except Exception:
            # Inner layers may wrap the overflow in their own exception types
            if not over_limit:
                raise
        if over_limit and not response_started:
            logger.info("Body rejected path={} received~{} limit={}", path, received, limit)
            await self._reject(scope, receive, send)

    @staticmethod
    async def _reject(scope: Scope, receive: Receive, send: Send) -> None:
        await json_error(413, "Payload too large")(scope, receive, send)


def _declared_length(scope: Scope) -> Optional[int]:
    for name, value in scope.get("headers", []):
        if name == b"content-length":
            try:
                length = int(value)
            except ValueError:
                return None
            return length if length >= 0 else None
    return None
