from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DeliveryStatus(Enum):
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    RETRYING = "RETRYING"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one HTTP call to one destination."""

    status_code: int  # 0 when no response was received
    response_body: bytes
    duration: float  # seconds
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class DeliveryAttempt:
    destination: str
    attempt: int
    max_attempts: int
    status: DeliveryStatus
    status_code: int
    timestamp: datetime
    response_time_ms: float
    error: str | None = None
