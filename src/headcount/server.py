#!/usr/bin/env python3
"""
HTTP API for the session registry

This module provides:
- OnlineHTTPHandler: request handler mapping /api/online/* routes onto a
  SessionRegistry and wrapping results in a {code, message, data} envelope
- start_server: launches a ThreadingHTTPServer in a daemon thread
- OnlineClient: thin HTTP client matching the API shape
"""

import json
import logging
import threading
import time
import urllib.error
import urllib.parse
import urllib.request
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from .registry import SessionRegistry

logger = logging.getLogger(__name__)

API_PREFIX = "/api/online"

ROUTES = [
    ("GET", f"{API_PREFIX}/count", "Current online user count"),
    ("GET", f"{API_PREFIX}/users", "List online users"),
    ("POST", f"{API_PREFIX}/login", "Log in {user_id}, returns a session id"),
    ("POST", f"{API_PREFIX}/heartbeat", "Keep {session_id} alive"),
    ("POST", f"{API_PREFIX}/logout", "End {session_id}"),
    ("POST", f"{API_PREFIX}/validate", "Check whether {session_id} is live"),
    ("GET", "/api/health", "Health check"),
]

MAX_BODY_BYTES = 64 * 1024


class BadRequest(Exception):
    """Request body could not be turned into registry arguments."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def envelope(code: int, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        body["data"] = data
    return body


def _get_template_env() -> Environment:
    return Environment(
        loader=PackageLoader("headcount", "templates"),
        autoescape=select_autoescape(["html", "j2"]),
        keep_trailing_newline=True,
    )


def render_index(registry: SessionRegistry) -> str:
    template = _get_template_env().get_template("index.html.j2")
    return template.render(
        routes=ROUTES,
        online_count=registry.online_count(),
        session_ttl=registry.session_ttl,
        sweep_interval=registry.sweep_interval,
    )


# ---------------------------------------------------------------------------
# HTTP handler
# ---------------------------------------------------------------------------

def _make_handler(registry: SessionRegistry, cors_origin: str = "*"):
    """Create a handler class bound to the given registry instance."""

    class OnlineHTTPHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            logger.debug("%s - %s", self.address_string(), format % args)

        def _cors_headers(self):
            self.send_header("Access-Control-Allow-Origin", cors_origin)
            self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
            self.send_header("Access-Control-Allow-Headers", "Content-Type")

        def _send(self, body: bytes, content_type: str, status: int):
            self.send_response(status)
            self._cors_headers()
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def _json_response(self, data: Any, status: int = HTTPStatus.OK):
            self._send(json.dumps(data).encode(), "application/json", status)

        def _read_json(self) -> Dict[str, Any]:
            try:
                length = int(self.headers.get("Content-Length") or 0)
            except ValueError:
                raise BadRequest("bad Content-Length")
            if length > MAX_BODY_BYTES:
                raise BadRequest("body too large")
            raw = self.rfile.read(length) if length > 0 else b""
            try:
                body = json.loads(raw.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                raise BadRequest("malformed JSON")
            if not isinstance(body, dict):
                raise BadRequest("expected a JSON object")
            return body

        def _field(self, body: Dict[str, Any], name: str) -> str:
            value = body.get(name)
            if not isinstance(value, str) or not value:
                raise BadRequest(f"missing {name}")
            return value

        def do_OPTIONS(self):
            self.send_response(HTTPStatus.NO_CONTENT)
            self._cors_headers()
            self.send_header("Content-Length", "0")
            self.end_headers()

        def do_GET(self):
            path = urllib.parse.urlparse(self.path).path.rstrip("/")

            if path == f"{API_PREFIX}/count":
                self._json_response(envelope(0, "success", {
                    "online_count": registry.online_count(),
                    "timestamp": _now_ms(),
                }))

            elif path == f"{API_PREFIX}/users":
                users = sorted(registry.online_users())
                self._json_response(envelope(0, "success", {
                    "users": users,
                    "count": len(users),
                }))

            elif path == "/api/health":
                stats = registry.stats()
                self._json_response({
                    "status": "healthy",
                    "timestamp": _now_ms(),
                    "sessions": stats["sessions"],
                    "online_count": stats["online_count"],
                })

            elif path == "":
                self._send(render_index(registry).encode(), "text/html; charset=utf-8", HTTPStatus.OK)

            else:
                self._json_response(envelope(-1, "not found"), status=HTTPStatus.NOT_FOUND)

        def do_POST(self):
            path = urllib.parse.urlparse(self.path).path.rstrip("/")
            handler = {
                f"{API_PREFIX}/login": self._login,
                f"{API_PREFIX}/heartbeat": self._heartbeat,
                f"{API_PREFIX}/logout": self._logout,
                f"{API_PREFIX}/validate": self._validate,
            }.get(path)
            if handler is None:
                self._json_response(envelope(-1, "not found"), status=HTTPStatus.NOT_FOUND)
                return
            try:
                body = self._read_json()
                handler(body)
            except BadRequest as exc:
                self._json_response(
                    envelope(-1, f"invalid request: {exc}"), status=HTTPStatus.BAD_REQUEST,
                )

        def _login(self, body):
            session_id = registry.login(self._field(body, "user_id"))
            self._json_response(envelope(0, "login success", {
                "session_id": session_id,
                "online_count": registry.online_count(),
            }))

        def _heartbeat(self, body):
            ok = registry.heartbeat(self._field(body, "session_id"))
            self._json_response(envelope(
                0 if ok else -1,
                "heartbeat success" if ok else "invalid session",
                {"online_count": registry.online_count()},
            ))

        def _logout(self, body):
            registry.logout(self._field(body, "session_id"))
            self._json_response(envelope(0, "logout success"))

        def _validate(self, body):
            valid = registry.is_valid_session(self._field(body, "session_id"))
            self._json_response(envelope(
                0 if valid else -1,
                "valid session" if valid else "invalid session",
                {"valid": valid},
            ))

    return OnlineHTTPHandler


def start_server(
    registry: SessionRegistry,
    host: str = "0.0.0.0",
    port: int = 8080,
    cors_origin: str = "*",
) -> ThreadingHTTPServer:
    """Start a ThreadingHTTPServer in a daemon thread and return the server."""
    handler = _make_handler(registry, cors_origin=cors_origin)
    server = ThreadingHTTPServer((host, port), handler)
    thread = threading.Thread(target=server.serve_forever, name="headcount-http", daemon=True)
    thread.start()
    logger.info("listening on %s:%d", *server.server_address[:2])
    return server


# ---------------------------------------------------------------------------
# HTTP client (used by the CLI to query a running server)
# ---------------------------------------------------------------------------

class OnlineClient:
    """Thin HTTP client for the online API.

    Transport failures propagate as ``urllib.error.URLError`` / ``OSError``;
    API-level failures come back as the decoded ``{code, message}`` envelope.
    """

    def __init__(self, host: str = "localhost", port: int = 8080, timeout: float = 10):
        self._base = f"http://{host}:{port}"
        self._timeout = timeout
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def _request(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self._base}{path}"
        data = None
        headers = {}
        if payload is not None:
            data = json.dumps(payload).encode()
            headers["Content-Type"] = "application/json"
        req = urllib.request.Request(url, data=data, headers=headers)
        try:
            with self._opener.open(req, timeout=self._timeout) as resp:
                return json.loads(resp.read().decode())
        except urllib.error.HTTPError as exc:
            # 4xx responses still carry the JSON envelope
            return json.loads(exc.read().decode())

    def count(self) -> int:
        return self._request(f"{API_PREFIX}/count")["data"]["online_count"]

    def users(self) -> List[str]:
        return self._request(f"{API_PREFIX}/users")["data"]["users"]

    def health(self) -> Dict[str, Any]:
        return self._request("/api/health")

    def login(self, user_id: str) -> Dict[str, Any]:
        return self._request(f"{API_PREFIX}/login", {"user_id": user_id})

    def heartbeat(self, session_id: str) -> Dict[str, Any]:
        return self._request(f"{API_PREFIX}/heartbeat", {"session_id": session_id})

    def logout(self, session_id: str) -> Dict[str, Any]:
        return self._request(f"{API_PREFIX}/logout", {"session_id": session_id})

    def validate(self, session_id: str) -> Dict[str, Any]:
        return self._request(f"{API_PREFIX}/validate", {"session_id": session_id})
