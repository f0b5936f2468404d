from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from urllib.parse import quote

import requests
from loguru import logger

from narrator.resilience.watchdog import Deadline, read_within


DEFAULT_OUTPUT_FORMAT = "wav_22050"
MODEL_ID = "eleven_multilingual_v2"
DEFAULT_VOICE_SETTINGS: Dict[str, object] = {
    "stability": 0.2,
    "similarity_boost": 0.9,
    "style": 0.3,
    "use_speaker_boost": True,
}
CONNECT_TIMEOUT_SEC = 6.0


class ElevenLabsError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


def _mask_key(api_key: str) -> str:
    if not api_key:
        return ""
    visible = api_key[:4]
    return f"{visible}{'*' * max(len(api_key) - 4, 0)}"


def is_wav_format(output_format: str) -> bool:
    return output_format.startswith("wav_")


def media_type_for_format(output_format: str) -> str:
    return "audio/wav" if is_wav_format(output_format) else "audio/mpeg"


def extension_for_format(output_format: str) -> str:
    return "wav" if is_wav_format(output_format) else "mp3"


def merge_voice_settings(overrides: Optional[Mapping[str, object]] = None) -> Dict[str, object]:
    merged = dict(DEFAULT_VOICE_SETTINGS)
    if overrides:
        for key, value in overrides.items():
            if key in merged and value is not None:
                merged[key] = value
    return merged


@dataclass(frozen=True)
class SynthesisResult:
    audio: bytes
    output_format: str

    @property
    def media_type(self) -> str:
        return media_type_for_format(self.output_format)

    @property
    def filename(self) -> str:
        return f"speech.{extension_for_format(self.output_format)}"


class ElevenLabsProvider:
    BASE_URL = "https://api.elevenlabs.io"

    def __init__(
        self,
        api_key: str,
        voice_id: str,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.voice_id = voice_id
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self._session = session or requests.Session()
        logger.debug(
            "Initialized ElevenLabsProvider (voice={}, base={}, key={})",
            voice_id,
            self.base_url,
            _mask_key(api_key),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.voice_id)

    def synthesis_url(self, output_format: str) -> str:
        return (
            f"{self.base_url}/v1/text-to-speech/{quote(self.voice_id, safe='')}"
            f"?output_format={quote(output_format, safe='')}"
        )

    def synthesize(
        self,
        text: str,
        *,
        deadline: Deadline,
        voice_settings: Optional[Mapping[str, object]] = None,
        output_format: Optional[str] = None,
    ) -> SynthesisResult:
        fmt = output_format or DEFAULT_OUTPUT_FORMAT
        payload: Dict[str, object] = {
            "text": text,
            "model_id": MODEL_ID,
            "voice_settings": merge_voice_settings(voice_settings),
        }
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": media_type_for_format(fmt),
        }

        logger.debug(
            "Invoking ElevenLabs synthesis (voice={}, model={}, format={}, chars={})",
            self.voice_id,
            MODEL_ID,
            fmt,
            len(text),
        )

        response = self._session.post(
            self.synthesis_url(fmt),
            headers=headers,
            json=payload,
            stream=True,
            timeout=deadline.timeout(CONNECT_TIMEOUT_SEC),
        )
        try:
            if not response.ok:
                raw = read_within(response.iter_content(chunk_size=8192), deadline)
                detail = raw.decode("utf-8", errors="replace")
                logger.warning("ElevenLabs returned status={} detail={}", response.status_code, detail[:200])
                raise ElevenLabsError(response.status_code, detail)
            audio = read_within(response.iter_content(chunk_size=8192), deadline)
        finally:
            response.close()

        logger.debug("ElevenLabs synthesis complete (format={}, bytes={})", fmt, len(audio))
        return SynthesisResult(audio=audio, output_format=fmt)
