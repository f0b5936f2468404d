from __future__ import annotations

from typing import Any, Dict, Optional

from starlette.responses import JSONResponse


def error_payload(error: str, detail: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": error}
    if detail is not None:
        payload["detail"] = detail
    return payload


def json_error(status_code: int, error: str, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(error_payload(error, detail), status_code=status_code)
