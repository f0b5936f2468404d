from __future__ import annotations

import json
import socket
import threading
import time
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import requests


def find_free_port(preferred: Optional[int] = None) -> int:
    if preferred:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind(("127.0.0.1", preferred))
                return preferred
            except OSError:
                pass
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def make_web_root(target: Path) -> Path:
    target.mkdir(parents=True, exist_ok=True)
    (target / "index.html").write_text(
        "<!doctype html><html><body><app-root>spa-index</app-root></body></html>",
        encoding="utf-8",
    )
    assets = target / "assets"
    assets.mkdir(exist_ok=True)
    (assets / "main.js").write_text("console.log('main');", encoding="utf-8")
    (assets / "styles.css").write_text("body { margin: 0; }", encoding="utf-8")
    (assets / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    return target


class HTTPClient:
    def __init__(self, base_url: str, auth_token: Optional[str] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.auth_token = auth_token

    def _headers(self, headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        if headers:
            merged.update(headers)
        if self.auth_token:
            merged.setdefault("x-auth-token", self.auth_token)
        return merged

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        headers = kwargs.pop("headers", None)
        kwargs["headers"] = self._headers(headers)
        return self.session.request(method, url, **kwargs)

    def get(self, path: str, **kwargs) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> requests.Response:
        return self.request("POST", path, **kwargs)


class FakeResponse:
    """Just enough of ``requests.Response`` for the vendor providers."""

    def __init__(self, status_code: int = 200, content: bytes = b"", reason: str = "") -> None:
        self.status_code = status_code
        self.content = content
        self.reason = reason
        self.closed = False

    @classmethod
    def from_json(cls, payload: Any, status_code: int = 200) -> "FakeResponse":
        return cls(status_code, json.dumps(payload).encode("utf-8"))

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Records outbound posts and answers with a canned response or exception."""

    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[BaseException] = None) -> None:
        self.response = response or FakeResponse()
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def post(self, url: str, **kwargs) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response


def local_session() -> requests.Session:
    """Plain session that ignores proxy settings from the environment."""
    session = requests.Session()
    session.trust_env = False
    return session


class _DripHandler(BaseHTTPRequestHandler):
    """Answers every POST with a body sent one byte at a time."""

    def do_POST(self) -> None:
        self.rfile.read(int(self.headers.get("Content-Length") or 0))
        server = self.server
        self.send_response(server.drip_status)  # type: ignore[attr-defined]
        self.send_header("Content-Type", "application/octet-stream")
        self.send_header("Content-Length", str(server.drip_bytes))  # type: ignore[attr-defined]
        self.end_headers()
        try:
            for _ in range(server.drip_bytes):  # type: ignore[attr-defined]
                self.wfile.write(b"x")
                self.wfile.flush()
                time.sleep(server.drip_interval)  # type: ignore[attr-defined]
        except (BrokenPipeError, ConnectionResetError):
            return

    def log_message(self, format: str, *args: Any) -> None:
        return


@contextmanager
def drip_server(status: int = 200, total_bytes: int = 40, interval: float = 0.25) -> Iterator[str]:
    """Local vendor stand-in that never stalls long enough to trip a read timeout."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _DripHandler)
    server.daemon_threads = True
    server.drip_status = status  # type: ignore[attr-defined]
    server.drip_bytes = total_bytes  # type: ignore[attr-defined]
    server.drip_interval = interval  # type: ignore[attr-defined]
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


__all__ = [
    "FakeResponse",
    "FakeSession",
    "HTTPClient",
    "drip_server",
    "find_free_port",
    "local_session",
    "make_web_root",
]
