import json
import uuid
from datetime import datetime, timezone

from src.models.destination import Destination, Endpoint


class DestinationFactory:
    """Factory for creating Destination instances with sensible defaults."""

    @staticmethod
    def create(url: str = "http://127.0.0.1:9/hook", **overrides) -> Destination:
        defaults = {
            "url": url,
            "method": "POST",
            "headers": {},
            "timeout": 5.0,
            "retries": 0,
            "retry_delay": 0.0,
        }
        defaults.update(overrides)
        return Destination(**defaults)


class EndpointFactory:
    """Factory for creating Endpoint instances."""

    @staticmethod
    def create(*destinations: Destination, path: str | None = None) -> Endpoint:
        if not destinations:
            destinations = (DestinationFactory.create(),)
        return Endpoint(
            path=path or f"/webhook/{uuid.uuid4().hex[:8]}",
            destinations=tuple(destinations),
        )


class PayloadFactory:
    """Factory for webhook request bodies and headers."""

    @staticmethod
    def create(event_type: str = "push", **fields) -> bytes:
        body = {
            "id": f"evt_{uuid.uuid4().hex[:16]}",
            "type": event_type,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        body.update(fields)
        return json.dumps(body).encode()

    @staticmethod
    def headers(**extra: str) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "webhook-sender/1.0",
        }
        headers.update(extra)
        return headers
