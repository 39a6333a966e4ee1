import socket

import pytest

from src.forwarder.engine import ForwardingEngine
from src.forwarder.logger import DeliveryLogger
from src.forwarder.registrar import EndpointRegistrar
from src.forwarder.retry import RetryPolicy
from src.observability.metrics import MetricsRegistry
from src.receiver.server import DestinationReceiver
from src.server.server import WebhookProxyServer
from src.utils.factories import DestinationFactory, EndpointFactory, PayloadFactory


@pytest.fixture
def metrics():
    return MetricsRegistry()


@pytest.fixture
def logger():
    return DeliveryLogger()


@pytest.fixture
def retry_policy():
    return RetryPolicy()


@pytest.fixture
def sleeps():
    """Records requested retry delays instead of sleeping."""
    return []


@pytest.fixture
def make_engine(metrics, logger, retry_policy, sleeps):
    def _make(*destinations, **options):
        options.setdefault("sleep", sleeps.append)
        return ForwardingEngine(
            list(destinations),
            metrics=metrics,
            logger=logger,
            retry_policy=retry_policy,
            **options,
        )
    return _make


@pytest.fixture
def receiver():
    server = DestinationReceiver()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def second_receiver():
    server = DestinationReceiver()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def closed_port_url():
    """URL of a local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/hook"


@pytest.fixture
def registrar(metrics, logger):
    return EndpointRegistrar(metrics=metrics, logger=logger)


@pytest.fixture
def proxy_server(registrar):
    server = WebhookProxyServer(registrar, version="1.2.3")
    yield server
    server.stop()


@pytest.fixture
def destination_factory():
    return DestinationFactory


@pytest.fixture
def endpoint_factory():
    return EndpointFactory


@pytest.fixture
def payload_factory():
    return PayloadFactory
