from __future__ import annotations

import json
from typing import Any, Dict, Optional

import requests
from loguru import logger

from narrator.resilience.watchdog import Deadline, read_within


DEFAULT_MIME_TYPE = "image/jpeg"
MAX_TOKENS = 1500
TEMPERATURE = 0.7
FALLBACK_EXPLANATION = "No explanation was returned."
CONNECT_TIMEOUT_SEC = 6.0


class OpenAIError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


def image_data_uri(image_base64: str, mime_type: Optional[str] = None) -> str:
    return f"data:{mime_type or DEFAULT_MIME_TYPE};base64,{image_base64}"


def build_vision_payload(model: str, prompt: str, image_base64: str, mime_type: Optional[str]) -> Dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_data_uri(image_base64, mime_type)}},
                ],
            }
        ],
        "max_tokens": MAX_TOKENS,
        "temperature": TEMPERATURE,
    }


def extract_explanation(data: Any) -> str:
    """First choice's message content, or the fallback when it is absent."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return FALLBACK_EXPLANATION
    if isinstance(content, str) and content:
        return content
    return FALLBACK_EXPLANATION


def _error_detail(body: bytes, reason: str = "") -> str:
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text) if text else {}
    except ValueError:
        payload = {}
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return text or reason or "Unknown error"


class OpenAIVisionProvider:
    BASE_URL = "https://api.openai.com"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def explain(
        self,
        image_base64: str,
        *,
        prompt: str,
        deadline: Deadline,
        mime_type: Optional[str] = None,
    ) -> str:
        payload = build_vision_payload(self.model, prompt, image_base64, mime_type)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        logger.debug(
            "Invoking OpenAI vision (model={}, mime={}, image_chars={})",
            self.model,
            mime_type or DEFAULT_MIME_TYPE,
            len(image_base64),
        )

        response = self._session.post(
            f"{self.base_url}/v1/chat/completions",
            headers=headers,
            json=payload,
            stream=True,
            timeout=deadline.timeout(CONNECT_TIMEOUT_SEC),
        )
        try:
            if not response.ok:
                raw = read_within(response.iter_content(chunk_size=8192), deadline)
                detail = _error_detail(raw, response.reason)
                logger.warning("OpenAI returned status={} detail={}", response.status_code, detail[:200])
                raise OpenAIError(response.status_code, detail)
            body = read_within(response.iter_content(chunk_size=8192), deadline)
        finally:
            response.close()
        return extract_explanation(json.loads(body))
