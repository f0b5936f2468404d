from __future__ import annotations

import os
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, Dict, Generator, Optional

import pytest
import requests
from fastapi.testclient import TestClient

from narrator.config import Settings
from narrator.main import create_app
from tests.utils import FakeSession, HTTPClient, find_free_port, make_web_root


LIVE_AUTH_TOKEN = "live-test-token"


def _collect_env_overrides(port: int, web_root: Path) -> Dict[str, str]:
    return {
        "BIND_HOST": "127.0.0.1",
        "PORT": str(port),
        "LOG_LEVEL": "WARNING",
        "AUTH_TOKEN": LIVE_AUTH_TOKEN,
        "WEB_ROOT": str(web_root),
        # No vendor credentials: the live server never reaches a vendor
        "ELEVENLABS_API_KEY": "",
        "ELEVENLABS_VOICE_ID": "",
        "OPENAI_API_KEY": "",
        "EXPLAIN_PROMPT_FILE": "",
        "LOG_METRICS": "0",
    }


def _wait_for_server(base_url: str, timeout: float = 25.0) -> bool:
    start = time.monotonic()
    while time.monotonic() - start < timeout:
        try:
            resp = requests.get(f"{base_url}/health", timeout=3)
            if resp.status_code == 200:
                return True
        except requests.exceptions.RequestException:
            time.sleep(0.5)
    return False


@pytest.fixture(scope="session")
def web_root(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return make_web_root(tmp_path_factory.mktemp("public"))


@pytest.fixture(scope="session")
def test_env(web_root: Path) -> Generator[Dict[str, object], None, None]:
    base_env = os.environ.copy()
    preferred_port = int(base_env.get("TEST_PORT", "8013") or "8013")
    port = find_free_port(preferred_port)
    env = base_env.copy()
    env.update(_collect_env_overrides(port, web_root))

    base_url = f"http://127.0.0.1:{port}"
    cmd = [sys.executable, "-m", "uvicorn", "narrator.main:app", "--host", "127.0.0.1", "--port", str(port)]
    proc = subprocess.Popen(
        cmd,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        env=env,
        cwd=str(Path(__file__).resolve().parents[1]),
    )

    try:
        if not _wait_for_server(base_url):
            raise RuntimeError("Server did not become ready in time")
        yield {
            "base_url": base_url,
            "env": env,
            "auth_token": LIVE_AUTH_TOKEN,
        }
    finally:
        proc.terminate()
        try:
            proc.wait(timeout=10)
        except subprocess.TimeoutExpired:
            proc.kill()
        # allow uvicorn to release port
        time.sleep(0.5)


@pytest.fixture(scope="session")
def base_url(test_env: Dict[str, object]) -> str:
    return str(test_env["base_url"])


@pytest.fixture(scope="session")
def http_client(base_url: str, test_env: Dict[str, object]) -> HTTPClient:
    return HTTPClient(base_url, auth_token=str(test_env["auth_token"]))


@pytest.fixture(scope="session")
def anonymous_client(base_url: str) -> HTTPClient:
    return HTTPClient(base_url)


@pytest.fixture
def make_settings(web_root: Path) -> Callable[..., Settings]:
    def _factory(**overrides) -> Settings:
        values = {
            "log_level": "WARNING",
            "elevenlabs_api_key": "sk_test_elevenlabs",
            "elevenlabs_voice_id": "voice-123",
            "elevenlabs_base_url": "https://tts.vendor.test",
            "openai_api_key": "sk-test-openai",
            "openai_base_url": "https://vision.vendor.test",
            "web_root": str(web_root),
        }
        values.update(overrides)
        return Settings(**values)

    return _factory


@pytest.fixture
def tts_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def vision_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_client(
    make_settings: Callable[..., Settings],
    tts_session: FakeSession,
    vision_session: FakeSession,
) -> Callable[..., TestClient]:
    def _factory(settings: Optional[Settings] = None, **overrides) -> TestClient:
        app = create_app(
            settings or make_settings(**overrides),
            tts_session=tts_session,  # type: ignore[arg-type]
            vision_session=vision_session,  # type: ignore[arg-type]
        )
        return TestClient(app)

    return _factory


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()
