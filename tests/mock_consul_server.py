"""Minimal in-memory Consul KV HTTP API for backend tests.

Implements ``GET /v1/kv/<key>?raw`` and ``PUT /v1/kv/<key>`` the way a
Consul agent answers them.  Behaviour flags (pass via ``behaviours``):

  ``require_token``:  Respond 403 unless ``X-Consul-Token`` matches.
  ``reject_put``:     Answer PUTs with 200 and a ``false`` body.
  ``fail_status``:    Answer every request with this HTTP status.
"""

import threading
import urllib.parse
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Dict, Optional


class MockConsulHandler(BaseHTTPRequestHandler):

    def log_message(self, format, *args):
        pass

    def _send(self, status: int, body: bytes = b"", content_type: str = "application/json"):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _key(self) -> Optional[str]:
        path = urllib.parse.urlsplit(self.path).path
        if not path.startswith("/v1/kv/"):
            return None
        return urllib.parse.unquote(path[len("/v1/kv/"):])

    def _gate(self) -> bool:
        """Apply failure flags.  Returns True if the request was answered."""
        behaviours = self.server.behaviours
        self.server.requests.append((self.command, self.path, self.headers.get("X-Consul-Token")))
        if behaviours.get("fail_status"):
            self._send(behaviours["fail_status"], b"error")
            return True
        token = behaviours.get("require_token")
        if token and self.headers.get("X-Consul-Token") != token:
            self._send(403, b"Permission denied", "text/plain")
            return True
        return False

    def do_GET(self):
        if self._gate():
            return
        key = self._key()
        if key is None or key not in self.server.kv:
            return self._send(404)
        self._send(200, self.server.kv[key], "application/octet-stream")

    def do_PUT(self):
        if self._gate():
            return
        key = self._key()
        if key is None:
            return self._send(400, b"Missing key name", "text/plain")
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length) if length else b""
        if self.server.behaviours.get("reject_put"):
            return self._send(200, b"false")
        self.server.kv[key] = body
        self._send(200, b"true")


class MockConsulServer:
    """In-memory Consul agent running in a daemon thread.

    Args:
        behaviours:  Dict of behaviour flags (see module docstring).
    """

    def __init__(self, behaviours: Optional[Dict[str, Any]] = None):
        self.behaviours = dict(behaviours or {})
        self.server = HTTPServer(("127.0.0.1", 0), MockConsulHandler)
        self.server.behaviours = self.behaviours
        self.server.kv = {}
        self.server.requests = []
        self._thread = None

    @property
    def address(self) -> str:
        host, port = self.server.server_address[:2]
        return f"{host}:{port}"

    @property
    def kv(self) -> Dict[str, bytes]:
        return self.server.kv

    @property
    def requests(self) -> list:
        return self.server.requests

    def start(self):
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self):
        self.server.shutdown()
        self.server.server_close()
        if self._thread:
            self._thread.join(timeout=5)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()
