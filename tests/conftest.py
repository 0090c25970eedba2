"""
Pytest configuration and fixtures.
"""
from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Tuple
from urllib.parse import parse_qsl, urlsplit

import pytest

from cloudbuilder.config import Credentials, WorkerConfig
from cloudbuilder.model import JobType, Platform, Target
from cloudbuilder.ui.console import Console, set_console


@pytest.fixture(autouse=True)
def console():
    """Fresh debug console for every test."""
    c = Console(debug=True)
    set_console(c)
    return c


@pytest.fixture
def credentials():
    return Credentials("builder@example.com", "secret", token="tok")


@pytest.fixture
def make_config(tmp_path):
    """Build a WorkerConfig rooted in tmp_path; keyword overrides win."""

    def _make(**overrides) -> WorkerConfig:
        values: Dict[str, Any] = dict(
            api_url="http://api.invalid",
            enabled_jobs=frozenset({JobType.RELEASE}),
            enabled_targets=frozenset({Target.CLIENT}),
            enabled_platforms=frozenset({Platform.WINDOWS}),
            project_dir=str(tmp_path / "project"),
            project_name="Metaverse",
            output_dir=str(tmp_path / "out"),
        )
        values.update(overrides)
        return WorkerConfig(**values)

    return _make


# ---------------------------------------------------------------------
# Local HTTP server
# ---------------------------------------------------------------------

@dataclass
class RecordedRequest:
    method: str
    path: str
    query: Dict[str, str]
    headers: Any
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


@dataclass
class FakeAPI:
    base_url: str = ""
    requests: List[RecordedRequest] = field(default_factory=list)
    routes: Dict[Tuple[str, str], Tuple[int, Any]] = field(default_factory=dict)

    def respond(self, method: str, path: str, status: int = 200, payload: Any = None) -> None:
        self.routes[(method, path)] = (status, {} if payload is None else payload)

    def requests_to(self, method: str, path: str) -> List[RecordedRequest]:
        return [r for r in self.requests if r.method == method and r.path == path]


def _handler_for(api: FakeAPI):
    class Handler(BaseHTTPRequestHandler):
        def _handle(self):
            url = urlsplit(self.path)
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length else b""
            api.requests.append(
                RecordedRequest(self.command, url.path, dict(parse_qsl(url.query)), self.headers, body)
            )

            status, payload = api.routes.get(
                (self.command, url.path), (404, {"status": "error", "message": "not found"})
            )
            raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(raw)))
            self.end_headers()
            self.wfile.write(raw)

        do_GET = do_POST = do_PUT = do_PATCH = _handle

        def log_message(self, format, *args):
            pass

    return Handler


@pytest.fixture
def fake_api():
    """A job API on localhost answering canned JSON and recording every request."""
    api = FakeAPI()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _handler_for(api))
    api.base_url = f"http://127.0.0.1:{server.server_address[1]}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield api
    server.shutdown()
    server.server_close()
