from functools import lru_cache
from pathlib import Path
from typing import Literal
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_PATH = PROJECT_ROOT / ".env"
_ENV_LOADED = False


def _load_env() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    if ENV_PATH.exists():
        load_dotenv(dotenv_path=ENV_PATH, override=False)
    else:
        load_dotenv(override=False)
    _ENV_LOADED = True


def _as_bool(value: str | int | None, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _as_float(value: str | float | int | None, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value.strip())
    except ValueError:
        return default


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    bind_host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    # Empty token disables the auth gate
    auth_token: str = Field(default="")
    elevenlabs_api_key: str = Field(default="")
    elevenlabs_voice_id: str = Field(default="")
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io")
    openai_api_key: str = Field(default="")
    openai_base_url: str = Field(default="https://api.openai.com")
    openai_vision_model: str = Field(default="gpt-4o")
    explain_prompt_file: str = Field(default="")
    upstream_timeout_sec: float = Field(default=25.0)
    web_root: str = Field(default=str(PROJECT_ROOT / "public"))
    max_body_mb: int = Field(default=1)
    # base64 inflates images by a third, so /explain gets a separate cap
    max_image_mb: int = Field(default=10)
    log_metrics: bool = Field(default=False)
    metrics_jl_path: str = Field(default="logs/metrics.jl")


def load_settings() -> Settings:
    _load_env()
    return Settings(
        bind_host=os.environ.get("BIND_HOST", "0.0.0.0"),
        port=os.environ.get("PORT") or "3000",
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        auth_token=os.environ.get("AUTH_TOKEN", ""),
        elevenlabs_api_key=os.environ.get("ELEVENLABS_API_KEY", ""),
        elevenlabs_voice_id=os.environ.get("ELEVENLABS_VOICE_ID", ""),
        elevenlabs_base_url=os.environ.get("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io"),
        openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
        openai_base_url=os.environ.get("OPENAI_BASE_URL", "https://api.openai.com"),
        openai_vision_model=os.environ.get("OPENAI_VISION_MODEL", "gpt-4o"),
        explain_prompt_file=os.environ.get("EXPLAIN_PROMPT_FILE", ""),
        upstream_timeout_sec=_as_float(os.environ.get("UPSTREAM_TIMEOUT_SEC"), 25.0),
        web_root=os.environ.get("WEB_ROOT") or str(PROJECT_ROOT / "public"),
        max_body_mb=os.environ.get("MAX_BODY_MB", "1"),
        max_image_mb=os.environ.get("MAX_IMAGE_MB", "10"),
        log_metrics=_as_bool(os.environ.get("LOG_METRICS"), False),
        metrics_jl_path=os.environ.get("METRICS_JL_PATH", "logs/metrics.jl"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
