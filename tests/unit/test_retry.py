import pytest

from src.forwarder.retry import RetryDecision, RetryPolicy
from src.models.delivery import DeliveryOutcome
from src.utils.factories import DestinationFactory


def _outcome(status_code, error=None):
    return DeliveryOutcome(status_code=status_code, response_body=b"", duration=0.01, error=error)


class TestMaxAttempts:
    """Tests for RetryPolicy.max_attempts()."""

    @pytest.mark.unit
    @pytest.mark.parametrize("retries,expected", [(0, 1), (1, 2), (3, 4)])
    def test_max_attempts_is_retries_plus_one(self, retry_policy, retries, expected):
        destination = DestinationFactory.create(retries=retries)
        assert retry_policy.max_attempts(destination) == expected

    @pytest.mark.unit
    def test_negative_retries_means_single_attempt(self, retry_policy):
        destination = DestinationFactory.create(retries=-3)
        assert retry_policy.max_attempts(destination) == 1


class TestShouldRetry:
    """Tests for RetryPolicy.should_retry()."""

    @pytest.mark.unit
    @pytest.mark.parametrize("status_code", [200, 201, 204, 299])
    def test_no_retry_for_2xx(self, retry_policy, status_code):
        assert retry_policy.should_retry(_outcome(status_code)) is False

    @pytest.mark.unit
    @pytest.mark.parametrize("status_code", [301, 400, 404, 429, 500, 503])
    def test_retry_for_every_non_2xx(self, retry_policy, status_code):
        assert retry_policy.should_retry(_outcome(status_code)) is True

    @pytest.mark.unit
    def test_retry_for_transport_failure(self, retry_policy):
        assert retry_policy.should_retry(_outcome(0, error="connection error")) is True


class TestNextDelay:
    """Tests for RetryPolicy.next_delay()."""

    @pytest.mark.unit
    def test_configured_delay_is_used(self, retry_policy):
        destination = DestinationFactory.create(retries=2, retry_delay=2.5)
        assert retry_policy.next_delay(destination) == 2.5

    @pytest.mark.unit
    @pytest.mark.parametrize("retry_delay", [0, -1])
    def test_non_positive_delay_falls_back_to_one_second(self, retry_policy, retry_delay):
        destination = DestinationFactory.create(retries=2, retry_delay=retry_delay)
        assert retry_policy.next_delay(destination) == 1.0

    @pytest.mark.unit
    def test_custom_default_delay(self):
        policy = RetryPolicy(default_delay=0.25)
        assert policy.next_delay(DestinationFactory.create(retries=1)) == 0.25


class TestDecide:
    """Tests for RetryPolicy.decide()."""

    @pytest.mark.unit
    def test_success_stops(self, retry_policy):
        destination = DestinationFactory.create(retries=3, retry_delay=0.5)
        assert retry_policy.decide(1, destination, _outcome(200)) == RetryDecision(retry=False)

    @pytest.mark.unit
    def test_failure_with_attempts_left_waits_retry_delay(self, retry_policy):
        destination = DestinationFactory.create(retries=2, retry_delay=0.5)
        decision = retry_policy.decide(1, destination, _outcome(500))
        assert decision.retry is True
        assert decision.delay == 0.5

    @pytest.mark.unit
    def test_failure_on_last_attempt_stops(self, retry_policy):
        destination = DestinationFactory.create(retries=2, retry_delay=0.5)
        assert retry_policy.decide(3, destination, _outcome(500)).retry is False

    @pytest.mark.unit
    def test_no_retries_configured_stops_after_first_failure(self, retry_policy):
        destination = DestinationFactory.create(retries=0)
        assert retry_policy.decide(1, destination, _outcome(0, error="timeout")).retry is False
