from __future__ import annotations

from pathlib import Path

from loguru import logger
from starlette.exceptions import HTTPException
from starlette.responses import Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from narrator.api_paths import is_api_path


INDEX_DOCUMENT = "index.html"


class SPAStaticFiles(StaticFiles):
    """Static files with client-side routing fallback to the SPA entry document."""

    def __init__(self, *, directory: str | Path) -> None:
        super().__init__(directory=directory, html=True)

    @staticmethod
    def is_reserved(scope: Scope) -> bool:
        return is_api_path(scope.get("path", ""))

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            response = await super().get_response(path, scope)
        except HTTPException as exc:
            if exc.status_code != 404 or self.is_reserved(scope):
                raise
            return await self._index_response(scope)
        if response.status_code == 404 and not self.is_reserved(scope):
            return await self._index_response(scope)
        return response

    async def _index_response(self, scope: Scope) -> Response:
        logger.debug("SPA fallback for {}", scope.get("path"))
        return await super().get_response(INDEX_DOCUMENT, scope)


def web_root_status(web_root: str | Path) -> dict:
    root = Path(web_root)
    return {
        "path": str(root),
        "exists": root.is_dir(),
        "index": (root / INDEX_DOCUMENT).is_file(),
    }
