import threading
from datetime import datetime, timezone

import structlog

from src.models.delivery import DeliveryAttempt, DeliveryStatus


class DeliveryLogger:
    """Thread-safe sink for forwarding events.

    Every event goes to the structured log; delivery attempts are also kept
    in memory so they can be inspected.
    """

    def __init__(self, log: structlog.stdlib.BoundLogger | None = None):
        self.log = log or structlog.get_logger("webhook_proxy.forwarder")
        self._attempts: list[DeliveryAttempt] = []
        self._lock = threading.Lock()

    def _record(self, attempt: DeliveryAttempt) -> None:
        with self._lock:
            self._attempts.append(attempt)

    def webhook_received(self, path: str, method: str, remote_addr: str, content_length: int) -> None:
        self.log.info(
            "Webhook received",
            path=path,
            method=method,
            remote_addr=remote_addr,
            content_length=content_length,
        )

    def delivery_succeeded(
        self,
        destination: str,
        status_code: int,
        duration: float,
        attempt: int,
        max_attempts: int,
        response_size: int,
    ) -> None:
        duration_ms = duration * 1000
        self._record(DeliveryAttempt(
            destination=destination,
            attempt=attempt,
            max_attempts=max_attempts,
            status=DeliveryStatus.DELIVERED,
            status_code=status_code,
            timestamp=datetime.now(timezone.utc),
            response_time_ms=duration_ms,
        ))
        self.log.info(
            "Webhook forwarded successfully",
            destination=destination,
            status_code=status_code,
            duration_ms=round(duration_ms, 3),
            attempt=attempt,
            response_size=response_size,
        )

    def delivery_failed(
        self,
        destination: str,
        error: str,
        attempt: int,
        max_attempts: int,
        status_code: int = 0,
        duration: float = 0.0,
    ) -> None:
        status = DeliveryStatus.RETRYING if attempt < max_attempts else DeliveryStatus.FAILED
        self._record(DeliveryAttempt(
            destination=destination,
            attempt=attempt,
            max_attempts=max_attempts,
            status=status,
            status_code=status_code,
            timestamp=datetime.now(timezone.utc),
            response_time_ms=duration * 1000,
            error=error,
        ))
        self.log.error(
            "Webhook forwarding failed",
            destination=destination,
            error=error,
            attempt=attempt,
            max_attempts=max_attempts,
        )

    def retry_scheduled(self, destination: str, attempt: int, max_attempts: int, retry_delay: float) -> None:
        self.log.info(
            "Retrying webhook forwarding",
            destination=destination,
            attempt=attempt,
            max_attempts=max_attempts,
            retry_delay=retry_delay,
        )

    def delivery_exhausted(self, destination: str, error: str, attempts: int) -> None:
        self.log.error(
            "Webhook forwarding failed after all retry attempts",
            destination=destination,
            error=error,
            attempts=attempts,
        )

    def get_attempts(self, destination: str | None = None) -> list[DeliveryAttempt]:
        with self._lock:
            if destination is None:
                return list(self._attempts)
            return [a for a in self._attempts if a.destination == destination]

    def get_failed_attempts(self) -> list[DeliveryAttempt]:
        with self._lock:
            return [a for a in self._attempts if a.status is not DeliveryStatus.DELIVERED]

    def clear(self) -> None:
        with self._lock:
            self._attempts.clear()
