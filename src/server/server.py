import json
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from src.forwarder.registrar import EndpointRegistrar

MAX_BODY_SIZE = 10 << 20  # 10 MiB


class BodyTooLarge(ValueError):
    pass


def calculate_success_rate(successful: int, total: int) -> float:
    """Success rate as a percentage, 0 when nothing was sent."""
    if total == 0:
        return 0.0
    return successful / total * 100


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class _ProxyHandler(BaseHTTPRequestHandler):
    """Routes inbound requests to forwarding engines and the metrics surface."""

    protocol_version = "HTTP/1.1"

    @property
    def proxy(self) -> "WebhookProxyServer":
        return self.server.proxy  # type: ignore[attr-defined]

    @property
    def route(self) -> str:
        return urlsplit(self.path).path

    def do_POST(self):
        route = self.route
        if self.proxy.registrar.get(route) is not None:
            self._handle_webhook(route)
        elif route == "/metrics/reset":
            self._handle_metrics_reset()
        else:
            self._not_found_or_not_allowed(route)
        self._log_received(route)

    def do_GET(self):
        route = self.route
        if route == "/metrics":
            self._handle_metrics()
        elif route == "/health":
            self._handle_health()
        else:
            self._not_found_or_not_allowed(route)
        self._log_received(route)

    def do_PUT(self):
        self._not_found_or_not_allowed(self.route)
        self._log_received(self.route)

    do_DELETE = do_PUT
    do_PATCH = do_PUT
    do_HEAD = do_PUT
    do_OPTIONS = do_PUT

    def _handle_webhook(self, route: str) -> None:
        try:
            body = self._read_body()
        except BodyTooLarge:
            self.proxy.log.error("Request body too large", path=route)
            self._send_json(413, {"error": "Request body too large"})
            return
        except (OSError, ValueError) as e:
            self.proxy.log.error("Failed to read request body", error=str(e), path=route)
            self._send_json(500, {"error": "Failed to read request body"})
            return

        # Only extracted data crosses into the delivery threads, never the request
        self.proxy.registrar.forward(route, body, self._flat_headers())
        self._send_json(202, {"status": "accepted"})

    def _handle_metrics(self) -> None:
        """Global counters plus per-destination and per-endpoint breakdowns.

        Counters are kept per destination URL, so endpoints forwarding to
        the same URL report the same shared entry under ``endpoints``.
        """
        snapshot = self.proxy.registrar.metrics.get_metrics()
        total = snapshot["total_requests"]
        successful = snapshot["successful_requests"]
        destinations = snapshot["destinations"]
        endpoints = {}
        for path in self.proxy.registrar.paths():
            engine = self.proxy.registrar.get(path)
            endpoints[path] = {
                "destinations": {d.url: destinations.get(d.url) for d in engine.destinations},
            }
        self._send_json(200, {
            "global": {
                "total_requests": total,
                "successful_requests": successful,
                "failed_requests": snapshot["failed_requests"],
                "retries": snapshot["retries"],
                "success_rate": calculate_success_rate(successful, total),
            },
            "avg_response_time_ms": snapshot["avg_response_time_ms"],
            "status_codes": snapshot["status_codes"],
            "destinations": destinations,
            "endpoints": endpoints,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    def _handle_metrics_reset(self) -> None:
        self._drain_body()
        self.proxy.registrar.metrics.reset()
        self._send_json(200, {"status": "ok", "message": "Metrics reset successfully"})

    def _handle_health(self) -> None:
        self._send_json(200, {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self.proxy.version,
        })

    def _not_found_or_not_allowed(self, route: str) -> None:
        self._drain_body()
        known = {"/metrics", "/metrics/reset", "/health", *self.proxy.registrar.paths()}
        if route in known:
            self._send_json(405, {"error": "method not allowed"})
        else:
            self._send_json(404, {"error": "not found"})

    def _read_body(self) -> bytes:
        if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
            return self._read_chunked()
        length = int(self.headers.get("Content-Length") or 0)
        if length < 0:
            raise ValueError(f"invalid Content-Length: {length}")
        if length > MAX_BODY_SIZE:
            self.close_connection = True
            raise BodyTooLarge(length)
        body = self.rfile.read(length)
        if len(body) != length:
            raise ValueError("unexpected end of request body")
        return body

    def _read_chunked(self) -> bytes:
        chunks = []
        size = 0
        while True:
            line = self.rfile.readline(65537)
            chunk_size = int(line.split(b";", 1)[0].strip(), 16)
            if chunk_size == 0:
                # Trailer section ends with an empty line
                while self.rfile.readline(65537) not in (b"\r\n", b"\n", b""):
                    pass
                return b"".join(chunks)
            size += chunk_size
            if size > MAX_BODY_SIZE:
                self.close_connection = True
                raise BodyTooLarge(size)
            chunks.append(self.rfile.read(chunk_size))
            self.rfile.readline(65537)

    def _drain_body(self) -> None:
        try:
            self._read_body()
        except (OSError, ValueError):
            self.close_connection = True

    def _flat_headers(self) -> dict[str, str]:
        """One value per header name; the first occurrence wins."""
        headers: dict[str, str] = {}
        for name, value in self.headers.items():
            headers.setdefault(name, value)
        return headers

    def _send_json(self, code: int, payload: dict) -> None:
        data = json.dumps(payload, default=_json_default).encode()
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(data)

    def _log_received(self, route: str) -> None:
        try:
            content_length = int(self.headers.get("Content-Length") or -1)
        except ValueError:
            content_length = -1
        self.proxy.registrar.logger.webhook_received(
            path=route,
            method=self.command,
            remote_addr=f"{self.client_address[0]}:{self.client_address[1]}",
            content_length=content_length,
        )

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class WebhookProxyServer:
    """HTTP front end that accepts webhooks and hands them to the registrar."""

    def __init__(
        self,
        registrar: EndpointRegistrar,
        host: str = "127.0.0.1",
        port: int = 0,
        version: str = "dev",
    ):
        self.registrar = registrar
        self.version = version
        self.log = registrar.logger.log
        self._host = host
        self._port = port
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def _bind(self) -> ThreadingHTTPServer:
        server = ThreadingHTTPServer((self._host, self._port), _ProxyHandler)
        server.daemon_threads = True
        server.proxy = self  # type: ignore[attr-defined]
        # Get the actual port (useful when port=0)
        self._port = server.server_address[1]
        self.log.info("Starting HTTP server", address=f"{self._host}:{self._port}")
        return server

    def start(self) -> None:
        """Serve in a background thread."""
        self._server = self._bind()
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def serve_forever(self) -> None:
        """Serve on the calling thread until shutdown() or an interrupt."""
        self._server = self._bind()
        try:
            self._server.serve_forever()
        finally:
            self._server.server_close()
            self._server = None

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}"

    @property
    def port(self) -> int:
        return self._port
