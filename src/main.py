#!/usr/bin/env python3
"""
Webhook Proxy Entry Point

Loads the configuration, sets up logging and serves the configured webhook
endpoints until interrupted.
"""

import argparse
import sys
from importlib.metadata import PackageNotFoundError, version as package_version

from src.config.loader import ConfigError, load_config
from src.forwarder.logger import DeliveryLogger
from src.forwarder.registrar import EndpointRegistrar
from src.observability.logging import configure_logging, get_logger
from src.observability.metrics import MetricsRegistry
from src.server.server import WebhookProxyServer

DRAIN_TIMEOUT = 10.0


def get_version() -> str:
    try:
        return package_version("webhook-proxy")
    except PackageNotFoundError:
        return "dev"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webhook-proxy",
        description="Receive webhooks and forward them to configured destinations",
    )
    parser.add_argument("--config", default="config.yaml", help="Path to configuration file")
    parser.add_argument("--version", action="store_true", help="Show version information")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    version = get_version()

    if args.version:
        print(f"webhook-proxy version {version}")
        return 0

    log = get_logger("webhook_proxy")
    log.info("Starting webhook-proxy", version=version)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        log.error("Failed to load configuration", error=str(e), path=args.config)
        return 1

    configure_logging(config.logging)

    metrics = MetricsRegistry()
    registrar = EndpointRegistrar(metrics=metrics, logger=DeliveryLogger(get_logger("webhook_proxy.forwarder")))
    registrar.register_all(config.endpoints)

    server = WebhookProxyServer(
        registrar,
        host=config.server.host,
        port=config.server.port,
        version=version,
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("Shutting down")
    except OSError as e:
        log.error("Failed to start server", error=str(e))
        return 1

    if not registrar.wait_idle(timeout=DRAIN_TIMEOUT):
        log.warning("Shutdown with deliveries still in flight")
    return 0


if __name__ == "__main__":
    sys.exit(main())
