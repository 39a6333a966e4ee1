import threading
from datetime import datetime

import pytest

from src.observability.metrics import MetricsRegistry

URL_A = "http://a.example/hook"
URL_B = "http://b.example/hook"


class TestRecordRequest:
    """Tests for record_request()."""

    @pytest.mark.unit
    def test_record_request_increments_global_and_destination(self, metrics):
        metrics.record_request(URL_A)
        metrics.record_request(URL_A)
        snapshot = metrics.get_metrics()
        assert snapshot["total_requests"] == 2
        assert snapshot["destinations"][URL_A]["total_requests"] == 2

    @pytest.mark.unit
    def test_destination_state_created_on_first_sight(self, metrics):
        metrics.record_request(URL_A)
        destination = metrics.get_metrics()["destinations"][URL_A]
        assert destination["successful_requests"] == 0
        assert destination["failed_requests"] == 0
        assert destination["last_error"] == ""
        assert destination["last_error_time"] is None


class TestRecordSuccess:
    """Tests for record_success()."""

    @pytest.mark.unit
    def test_record_success_counts_and_status_codes(self, metrics):
        metrics.record_request(URL_A)
        metrics.record_success(URL_A, 200, 0.010)
        metrics.record_request(URL_A)
        metrics.record_success(URL_A, 201, 0.030)
        snapshot = metrics.get_metrics()
        assert snapshot["successful_requests"] == 2
        assert snapshot["status_codes"] == {200: 1, 201: 1}
        assert snapshot["destinations"][URL_A]["status_codes"] == {200: 1, 201: 1}

    @pytest.mark.unit
    def test_average_latency_is_mean_in_milliseconds(self, metrics):
        metrics.record_success(URL_A, 200, 0.010)
        metrics.record_success(URL_A, 200, 0.020)
        metrics.record_success(URL_B, 200, 0.060)
        snapshot = metrics.get_metrics()
        assert snapshot["avg_response_time_ms"] == pytest.approx(30.0)
        assert snapshot["destinations"][URL_A]["avg_response_time_ms"] == pytest.approx(15.0)
        assert snapshot["destinations"][URL_B]["avg_response_time_ms"] == pytest.approx(60.0)

    @pytest.mark.unit
    def test_average_latency_zero_without_successes(self, metrics):
        metrics.record_request(URL_A)
        metrics.record_failure(URL_A, "boom", is_retry=False)
        snapshot = metrics.get_metrics()
        assert snapshot["avg_response_time_ms"] == 0.0
        assert snapshot["destinations"][URL_A]["avg_response_time_ms"] == 0.0


class TestRecordFailure:
    """Tests for record_failure()."""

    @pytest.mark.unit
    def test_first_attempt_failure_is_not_a_retry(self, metrics):
        metrics.record_request(URL_A)
        metrics.record_failure(URL_A, "connection refused", is_retry=False)
        snapshot = metrics.get_metrics()
        assert snapshot["failed_requests"] == 1
        assert snapshot["retries"] == 0
        assert snapshot["destinations"][URL_A]["retries"] == 0

    @pytest.mark.unit
    def test_retry_failure_increments_retry_counters_by_one(self, metrics):
        metrics.record_request(URL_A)
        metrics.record_failure(URL_A, "first", is_retry=False)
        metrics.record_failure(URL_A, "second", is_retry=True)
        metrics.record_failure(URL_A, "third", is_retry=True)
        snapshot = metrics.get_metrics()
        assert snapshot["failed_requests"] == 3
        assert snapshot["retries"] == 2
        assert snapshot["destinations"][URL_A]["failed_requests"] == 3
        assert snapshot["destinations"][URL_A]["retries"] == 2

    @pytest.mark.unit
    def test_last_error_tracks_most_recent_failure(self, metrics):
        metrics.record_request(URL_A)
        metrics.record_failure(URL_A, "first", is_retry=False)
        first_time = metrics.get_metrics()["destinations"][URL_A]["last_error_time"]
        metrics.record_failure(URL_A, "second", is_retry=True)
        destination = metrics.get_metrics()["destinations"][URL_A]
        assert destination["last_error"] == "second"
        assert isinstance(destination["last_error_time"], datetime)
        assert destination["last_error_time"] >= first_time


class TestSnapshot:
    """Tests for get_metrics() snapshots."""

    @pytest.mark.unit
    def test_snapshot_is_a_copy(self, metrics):
        metrics.record_success(URL_A, 200, 0.01)
        snapshot = metrics.get_metrics()
        snapshot["status_codes"][200] = 99
        snapshot["destinations"].clear()
        fresh = metrics.get_metrics()
        assert fresh["status_codes"] == {200: 1}
        assert URL_A in fresh["destinations"]


class TestReset:
    """Tests for reset()."""

    @pytest.mark.unit
    def test_reset_zeroes_counters_and_clears_destinations(self, metrics):
        metrics.record_request(URL_A)
        metrics.record_success(URL_A, 200, 0.01)
        metrics.record_request(URL_B)
        metrics.record_failure(URL_B, "boom", is_retry=True)
        metrics.reset()
        snapshot = metrics.get_metrics()
        assert snapshot["total_requests"] == 0
        assert snapshot["successful_requests"] == 0
        assert snapshot["failed_requests"] == 0
        assert snapshot["retries"] == 0
        assert snapshot["avg_response_time_ms"] == 0.0
        assert snapshot["status_codes"] == {}
        assert snapshot["destinations"] == {}


class TestConcurrency:
    """Counters stay exact under concurrent writers."""

    @pytest.mark.unit
    def test_concurrent_updates_are_not_lost(self):
        registry = MetricsRegistry()
        workers, iterations = 8, 500

        def work(index):
            url = URL_A if index % 2 else URL_B
            for _ in range(iterations):
                registry.record_request(url)
                registry.record_failure(url, "err", is_retry=True)
                registry.record_success(url, 200, 0.001)
                registry.get_metrics()

        threads = [threading.Thread(target=work, args=(i,)) for i in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = registry.get_metrics()
        expected = workers * iterations
        assert snapshot["total_requests"] == expected
        assert snapshot["failed_requests"] == expected
        assert snapshot["retries"] == expected
        assert snapshot["successful_requests"] == expected
        assert snapshot["status_codes"] == {200: expected}
        per_destination = sum(d["total_requests"] for d in snapshot["destinations"].values())
        assert per_destination == expected
