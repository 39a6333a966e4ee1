import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class _Counters:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    retries: int = 0
    response_time_total: float = 0.0  # seconds
    response_time_count: int = 0
    status_codes: dict[int, int] = field(default_factory=dict)

    def avg_response_time_ms(self) -> float:
        if self.response_time_count == 0:
            return 0.0
        return self.response_time_total * 1000 / self.response_time_count

    def as_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "retries": self.retries,
            "avg_response_time_ms": self.avg_response_time_ms(),
            "status_codes": dict(self.status_codes),
        }


@dataclass
class _DestinationCounters(_Counters):
    last_error: str = ""
    last_error_time: datetime | None = None

    def as_dict(self) -> dict:
        data = super().as_dict()
        data["last_error"] = self.last_error
        data["last_error_time"] = self.last_error_time
        return data


class MetricsRegistry:
    """Thread-safe delivery counters, global and per destination URL.

    One lock guards every field, so each record call is atomic and
    get_metrics() always sees a consistent state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._global = _Counters()
        self._destinations: dict[str, _DestinationCounters] = {}

    def _destination(self, url: str) -> _DestinationCounters:
        counters = self._destinations.get(url)
        if counters is None:
            counters = self._destinations[url] = _DestinationCounters()
        return counters

    def record_request(self, destination: str) -> None:
        with self._lock:
            self._global.total_requests += 1
            self._destination(destination).total_requests += 1

    def record_success(self, destination: str, status_code: int, duration: float) -> None:
        with self._lock:
            for counters in (self._global, self._destination(destination)):
                counters.successful_requests += 1
                counters.response_time_total += duration
                counters.response_time_count += 1
                counters.status_codes[status_code] = counters.status_codes.get(status_code, 0) + 1

    def record_failure(self, destination: str, error: str, is_retry: bool) -> None:
        with self._lock:
            dest = self._destination(destination)
            for counters in (self._global, dest):
                counters.failed_requests += 1
                if is_retry:
                    counters.retries += 1
            dest.last_error = error
            dest.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> dict:
        """Snapshot of all counters. The returned dict is a copy."""
        with self._lock:
            snapshot = self._global.as_dict()
            snapshot["destinations"] = {
                url: counters.as_dict() for url, counters in self._destinations.items()
            }
            return snapshot

    def reset(self) -> None:
        with self._lock:
            self._global = _Counters()
            self._destinations = {}
