import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Self


class _ReceiverHandler(BaseHTTPRequestHandler):
    """Records every request and answers with the configured response."""

    def _handle(self):
        content_length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(content_length) if content_length else b""

        server_config = self.server.config  # type: ignore[attr-defined]

        with server_config["lock"]:
            server_config["received_requests"].append({
                "method": self.command,
                "path": self.path,
                "headers": {k: v for k, v in self.headers.items()},
                "body": body,
                "received_at": time.monotonic(),
            })
            if server_config["response_sequence"]:
                code = server_config["response_sequence"].pop(0)
            else:
                code = server_config["response_code"]
            delay = server_config["response_delay"]
            response_body = server_config["response_body"]
            trickle = server_config["body_trickle"]

        # Simulate slow response
        if delay > 0:
            time.sleep(delay)

        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(response_body)))
        self.end_headers()
        if self.command == "HEAD":
            return
        if trickle > 0:
            self._write_slowly(response_body, trickle)
        else:
            self.wfile.write(response_body)

    def _write_slowly(self, data: bytes, interval: float) -> None:
        try:
            for i in range(len(data)):
                self.wfile.write(data[i:i + 1])
                self.wfile.flush()
                time.sleep(interval)
        except (BrokenPipeError, ConnectionResetError):
            self.close_connection = True

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_DELETE = _handle
    do_PATCH = _handle
    do_HEAD = _handle
    do_OPTIONS = _handle

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class DestinationReceiver:
    """Configurable HTTP server standing in for a forwarding destination."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        self._host = host
        self._port = port
        self._config = {
            "response_code": 200,
            "response_sequence": [],
            "response_delay": 0,
            "response_body": b'{"status": "ok"}',
            "body_trickle": 0,
            "received_requests": [],
            "lock": threading.Lock(),
        }
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def set_response_code(self, code: int) -> Self:
        self._config["response_code"] = code
        return self

    def set_response_sequence(self, codes: list[int]) -> Self:
        """Answer the next requests with ``codes`` in order, then the default code."""
        with self._config["lock"]:
            self._config["response_sequence"] = list(codes)
        return self

    def set_response_delay(self, seconds: float) -> Self:
        self._config["response_delay"] = seconds
        return self

    def set_response_body(self, body: bytes) -> Self:
        self._config["response_body"] = body
        return self

    def set_body_trickle(self, interval: float) -> Self:
        """Send the response body one byte at a time, ``interval`` seconds apart."""
        self._config["body_trickle"] = interval
        return self

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _ReceiverHandler)
        self._server.daemon_threads = True
        self._server.config = self._config  # type: ignore[attr-defined]
        # Get the actual port (useful when port=0)
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

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
        return f"http://{self._host}:{self._port}/hook"

    @property
    def port(self) -> int:
        return self._port

    def get_received_requests(self) -> list[dict]:
        with self._config["lock"]:
            return list(self._config["received_requests"])

    def get_received_count(self) -> int:
        with self._config["lock"]:
            return len(self._config["received_requests"])

    def wait_for_requests(self, count: int, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.get_received_count() >= count:
                return True
            time.sleep(0.01)
        return self.get_received_count() >= count

    def clear(self) -> None:
        with self._config["lock"]:
            self._config["received_requests"].clear()
