from typing import Annotated

from fastapi import Depends, Request

from narrator.config import Settings
from providers.elevenlabs_tts import ElevenLabsProvider
from providers.openai_vision import OpenAIVisionProvider


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_tts_provider(request: Request) -> ElevenLabsProvider:
    return request.app.state.tts_provider


def get_vision_provider(request: Request) -> OpenAIVisionProvider:
    return request.app.state.vision_provider


def get_explain_prompt(request: Request) -> str:
    return request.app.state.explain_prompt


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
TTSProviderDep = Annotated[ElevenLabsProvider, Depends(get_tts_provider)]
VisionProviderDep = Annotated[OpenAIVisionProvider, Depends(get_vision_provider)]
PromptDep = Annotated[str, Depends(get_explain_prompt)]
