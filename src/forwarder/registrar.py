import threading
import time

from src.forwarder.engine import DeliveryBatch, ForwardingEngine
from src.forwarder.logger import DeliveryLogger
from src.forwarder.retry import RetryPolicy
from src.models.destination import Endpoint
from src.observability.metrics import MetricsRegistry


class EndpointRegistrar:
    """Binds inbound paths to forwarding engines sharing one metrics registry."""

    def __init__(
        self,
        metrics: MetricsRegistry,
        logger: DeliveryLogger,
        retry_policy: RetryPolicy | None = None,
        **engine_options,
    ):
        self.metrics = metrics
        self.logger = logger
        self.retry_policy = retry_policy or RetryPolicy()
        self._engine_options = engine_options
        self._engines: dict[str, ForwardingEngine] = {}
        self._batches: list[DeliveryBatch] = []
        self._lock = threading.Lock()

    def register(self, endpoint: Endpoint) -> ForwardingEngine:
        if endpoint.path in self._engines:
            raise ValueError(f"Endpoint {endpoint.path} is already registered")

        self.logger.log.info(
            "Registering webhook endpoint",
            path=endpoint.path,
            destinations=len(endpoint.destinations),
        )
        engine = ForwardingEngine(
            endpoint.destinations,
            metrics=self.metrics,
            logger=self.logger,
            retry_policy=self.retry_policy,
            **self._engine_options,
        )
        self._engines[endpoint.path] = engine
        return engine

    def register_all(self, endpoints: list[Endpoint]) -> None:
        for endpoint in endpoints:
            self.register(endpoint)

    def get(self, path: str) -> ForwardingEngine | None:
        return self._engines.get(path)

    def paths(self) -> list[str]:
        return list(self._engines)

    def forward(self, path: str, payload: bytes, headers: dict[str, str]) -> DeliveryBatch:
        """Hand a payload to the engine for ``path`` without waiting on delivery.

        Raises:
            KeyError: No endpoint is registered for ``path``.
        """
        engine = self._engines[path]
        batch = engine.forward(payload, headers)
        with self._lock:
            self._batches = [b for b in self._batches if not b.done()]
            self._batches.append(batch)
        return batch

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait for in-flight deliveries, e.g. before shutdown.

        Returns True if nothing is left running.
        """
        with self._lock:
            batches = list(self._batches)
        deadline = None if timeout is None else time.monotonic() + timeout
        for batch in batches:
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            batch.join(remaining)
        return all(b.done() for b in batches)
