import socket
import threading
import time

import requests
from requests.structures import CaseInsensitiveDict

from src.models.delivery import DeliveryOutcome
from src.models.destination import Destination

# Headers describing the inbound connection rather than the payload
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
}

CHUNK_SIZE = 64 * 1024


class DeliveryTimeout(requests.exceptions.Timeout):
    """The whole-attempt deadline elapsed while the response was being read."""


def merge_headers(request_headers: dict[str, str], destination_headers: dict[str, str]) -> CaseInsensitiveDict:
    """Forwarded request headers overlaid with the destination's own headers."""
    merged = CaseInsensitiveDict()
    for name, value in request_headers.items():
        if name.lower() not in HOP_BY_HOP_HEADERS:
            merged[name] = value
    for name, value in destination_headers.items():
        merged[name] = value
    return merged


def _shutdown_connection(resp: requests.Response) -> None:
    connection = getattr(resp.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is None:
        return
    try:
        # Wakes a read blocked on this socket; close() alone would not
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass


def _read_body(resp: requests.Response, deadline: float | None) -> bytes:
    """Read the whole response body, giving up once ``deadline`` passes.

    A timer shuts the connection down at the deadline, so a destination
    trickling its body cannot hold the read open past it.
    """
    if deadline is None:
        return resp.content

    expired = threading.Event()

    def _expire():
        expired.set()
        _shutdown_connection(resp)

    timer = threading.Timer(max(deadline - time.monotonic(), 0.0), _expire)
    timer.daemon = True
    timer.start()
    body = b""
    try:
        body = b"".join(resp.iter_content(chunk_size=CHUNK_SIZE))
    except requests.exceptions.RequestException:
        if not expired.is_set():
            raise
    except OSError as e:
        if not expired.is_set():
            raise requests.exceptions.ConnectionError(e) from e
    finally:
        timer.cancel()

    if expired.is_set() or time.monotonic() > deadline:
        raise DeliveryTimeout("deadline exceeded while reading response body")
    return body


def deliver(
    destination: Destination,
    payload: bytes,
    headers: dict[str, str],
    timeout: float | None = None,
) -> DeliveryOutcome:
    """Perform exactly one HTTP call to ``destination``.

    Transport problems never raise: they come back as an outcome with
    ``status_code=0`` and ``error`` set. Retry decisions, metrics and logging
    are left to the caller.

    Args:
        destination: Where to send the payload.
        payload: Raw request body, sent unmodified.
        headers: Headers from the inbound request.
        timeout: Deadline in seconds for the whole attempt. Defaults to the
            destination's timeout; 0 disables the deadline.
    """
    if timeout is None:
        timeout = destination.timeout
    start = time.monotonic()
    deadline = start + timeout if timeout > 0 else None

    status_code = 0
    body = b""
    error = None

    try:
        resp = requests.request(
            destination.method,
            destination.url,
            data=payload,
            headers=merge_headers(headers, destination.headers),
            timeout=timeout if timeout > 0 else None,
            allow_redirects=False,
            stream=True,
        )
        try:
            body = _read_body(resp, deadline)
            status_code = resp.status_code
        finally:
            resp.close()
    except requests.exceptions.Timeout as e:
        error = f"timeout: {e}"
    except requests.exceptions.ConnectionError as e:
        error = f"connection error: {e}"
    except requests.exceptions.RequestException as e:
        error = f"request failed: {e}"

    return DeliveryOutcome(
        status_code=status_code,
        response_body=body,
        duration=time.monotonic() - start,
        error=error,
    )
