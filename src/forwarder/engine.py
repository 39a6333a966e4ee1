import threading
import time
from typing import Callable

from src.forwarder.delivery import deliver
from src.forwarder.logger import DeliveryLogger
from src.forwarder.retry import RetryPolicy
from src.models.delivery import DeliveryOutcome
from src.models.destination import Destination
from src.observability.metrics import MetricsRegistry


class DeliveryBatch:
    """Handle on the delivery threads started by one forward() call.

    It only tells whether the threads are still running; delivery results
    are observable through metrics and logs.
    """

    def __init__(self, threads: list[threading.Thread]):
        self._threads = threads

    def __len__(self) -> int:
        return len(self._threads)

    def done(self) -> bool:
        return not any(t.is_alive() for t in self._threads)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for every delivery loop. Returns True if all have finished."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            thread.join(remaining)
        return self.done()


class ForwardingEngine:
    """Fans one received payload out to every destination of an endpoint."""

    def __init__(
        self,
        destinations: list[Destination] | tuple[Destination, ...],
        metrics: MetricsRegistry,
        logger: DeliveryLogger,
        retry_policy: RetryPolicy | None = None,
        send: Callable[..., DeliveryOutcome] = deliver,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.destinations = tuple(destinations)
        self.metrics = metrics
        self.logger = logger
        self.retry_policy = retry_policy or RetryPolicy()
        self._send = send
        self._sleep = sleep

    def forward(self, payload: bytes, headers: dict[str, str]) -> DeliveryBatch:
        """Start one delivery loop per destination and return immediately."""
        payload = bytes(payload)
        threads = []
        for destination in self.destinations:
            thread = threading.Thread(
                target=self._run_loop,
                args=(destination, payload, dict(headers)),
                name=f"deliver:{destination.url}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)
        return DeliveryBatch(threads)

    def _run_loop(self, destination: Destination, payload: bytes, headers: dict[str, str]) -> None:
        try:
            self.deliver_with_retry(destination, payload, headers)
        except Exception:
            self.logger.log.exception("Delivery loop crashed", destination=destination.url)

    def deliver_with_retry(self, destination: Destination, payload: bytes, headers: dict[str, str]) -> int:
        """Run the attempt/retry sequence for one destination.

        Returns the number of attempts made.
        """
        url = destination.url
        max_attempts = self.retry_policy.max_attempts(destination)
        self.metrics.record_request(url)

        last_error = None
        for attempt in range(1, max_attempts + 1):
            outcome = self._send(destination, payload, headers, destination.timeout)

            if outcome.succeeded:
                self.metrics.record_success(url, outcome.status_code, outcome.duration)
                self.logger.delivery_succeeded(
                    url,
                    outcome.status_code,
                    outcome.duration,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    response_size=len(outcome.response_body),
                )
                return attempt

            last_error = _describe_failure(outcome)
            self.metrics.record_failure(url, last_error, is_retry=attempt > 1)
            self.logger.delivery_failed(
                url,
                last_error,
                attempt=attempt,
                max_attempts=max_attempts,
                status_code=outcome.status_code,
                duration=outcome.duration,
            )

            decision = self.retry_policy.decide(attempt, destination, outcome)
            if not decision.retry:
                break
            self.logger.retry_scheduled(url, attempt, max_attempts, decision.delay)
            self._sleep(decision.delay)

        self.logger.delivery_exhausted(url, last_error, attempts=attempt)
        return attempt


def _describe_failure(outcome: DeliveryOutcome) -> str:
    if outcome.error:
        return outcome.error
    body = outcome.response_body.decode("utf-8", errors="replace")
    return f"received non-2xx status code: {outcome.status_code}, body: {body}"
