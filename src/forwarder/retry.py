from dataclasses import dataclass

from src.models.delivery import DeliveryOutcome
from src.models.destination import Destination


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0


class RetryPolicy:
    """Decides whether a destination gets another delivery attempt."""

    DEFAULT_DELAY = 1.0  # seconds

    def __init__(self, default_delay: float = DEFAULT_DELAY):
        self.default_delay = default_delay

    def max_attempts(self, destination: Destination) -> int:
        """The first attempt plus ``retries`` retries, never less than one."""
        return max(destination.retries, 0) + 1

    def should_retry(self, outcome: DeliveryOutcome) -> bool:
        """Any non-2xx outcome, including transport failures, is retryable."""
        return not outcome.succeeded

    def has_attempts_remaining(self, attempt: int, destination: Destination) -> bool:
        """Check if another attempt may follow ``attempt`` (1-based)."""
        return attempt < self.max_attempts(destination)

    def next_delay(self, destination: Destination) -> float:
        if destination.retry_delay <= 0:
            return self.default_delay
        return float(destination.retry_delay)

    def decide(self, attempt: int, destination: Destination, outcome: DeliveryOutcome) -> RetryDecision:
        if not self.should_retry(outcome):
            return RetryDecision(retry=False)
        if not self.has_attempts_remaining(attempt, destination):
            return RetryDecision(retry=False)
        return RetryDecision(retry=True, delay=self.next_delay(destination))
