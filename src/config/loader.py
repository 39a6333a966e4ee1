"""
Configuration loader for the webhook proxy.

Reads a YAML file into dataclasses, applies environment overrides and
defaults, then validates the result. Any problem raises ConfigError.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import yaml

from src.models.destination import Destination, Endpoint

VALID_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"}
VALID_LEVELS = {"debug", "info", "warn", "error"}
VALID_FORMATS = {"json", "text"}
VALID_OUTPUTS = {"stdout", "file"}

DEFAULT_TIMEOUT = 5.0
DEFAULT_RETRY_DELAY = 1.0

ENV_PREFIX = "WEBHOOK_PROXY_"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class ConfigError(ValueError):
    """Raised when the configuration cannot be loaded or is invalid."""


@dataclass
class ServerConfig:
    host: str = ""
    port: int = 0


@dataclass
class LoggingConfig:
    level: str = ""
    format: str = ""
    output: str = ""
    file_path: str = ""


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    endpoints: list[Endpoint] = field(default_factory=list)


def parse_duration(value) -> float:
    """Parse a duration into seconds.

    Accepts numbers (seconds) and Go-style strings such as ``"1.5s"``,
    ``"500ms"`` or ``"1m30s"``.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        return 0.0
    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0
    try:
        return sign * float(text)
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ConfigError(f"invalid duration: {value!r}")
    return sign * total


def _parse_destination(raw: dict, where: str) -> dict:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: must be a mapping")
    headers = raw.get("headers") or {}
    if not isinstance(headers, dict):
        raise ConfigError(f"{where}: headers must be a mapping")
    try:
        retries = int(raw.get("retries") or 0)
    except (TypeError, ValueError):
        raise ConfigError(f"{where}: retries must be an integer")
    try:
        timeout = parse_duration(raw.get("timeout"))
        retry_delay = parse_duration(raw.get("retry_delay"))
    except ConfigError as e:
        raise ConfigError(f"{where}: {e}")
    return {
        "url": str(raw.get("url") or ""),
        "method": str(raw.get("method") or ""),
        "headers": {str(k): str(v) for k, v in headers.items()},
        "timeout": timeout,
        "retries": retries,
        "retry_delay": retry_delay,
    }


def _parse(data: dict) -> tuple[Config, list[dict]]:
    server = data.get("server") or {}
    logging_ = data.get("logging") or {}
    try:
        port = int(server.get("port") or 0)
    except (TypeError, ValueError):
        raise ConfigError(f"invalid server port: {server.get('port')!r}")

    config = Config(
        server=ServerConfig(host=str(server.get("host") or ""), port=port),
        logging=LoggingConfig(
            level=str(logging_.get("level") or ""),
            format=str(logging_.get("format") or ""),
            output=str(logging_.get("output") or ""),
            file_path=str(logging_.get("file_path") or ""),
        ),
    )

    # Endpoints stay as plain dicts until defaults and validation are done,
    # since Destination is immutable.
    raw_endpoints = []
    for i, raw in enumerate(data.get("endpoints") or []):
        if not isinstance(raw, dict):
            raise ConfigError(f"endpoint[{i}]: must be a mapping")
        raw_endpoints.append({
            "path": str(raw.get("path") or ""),
            "destinations": [
                _parse_destination(d, f"endpoint[{i}].destination[{j}]")
                for j, d in enumerate(raw.get("destinations") or [])
            ],
        })
    return config, raw_endpoints


def apply_environment_overrides(config: Config, environ=None) -> None:
    environ = os.environ if environ is None else environ

    port = environ.get(ENV_PREFIX + "SERVER_PORT")
    if port is not None:
        try:
            config.server.port = int(port)
        except ValueError:
            pass
    if ENV_PREFIX + "SERVER_HOST" in environ:
        config.server.host = environ[ENV_PREFIX + "SERVER_HOST"]
    if ENV_PREFIX + "LOG_LEVEL" in environ:
        config.logging.level = environ[ENV_PREFIX + "LOG_LEVEL"]
    if ENV_PREFIX + "LOG_FORMAT" in environ:
        config.logging.format = environ[ENV_PREFIX + "LOG_FORMAT"]
    if ENV_PREFIX + "LOG_OUTPUT" in environ:
        config.logging.output = environ[ENV_PREFIX + "LOG_OUTPUT"]
    if ENV_PREFIX + "LOG_FILE_PATH" in environ:
        config.logging.file_path = environ[ENV_PREFIX + "LOG_FILE_PATH"]


def set_default_values(config: Config, raw_endpoints: list[dict]) -> None:
    if config.server.port == 0:
        config.server.port = 8080
    if not config.server.host:
        config.server.host = "0.0.0.0"

    if not config.logging.level:
        config.logging.level = "info"
    if not config.logging.format:
        config.logging.format = "json"
    if not config.logging.output:
        config.logging.output = "stdout"

    for endpoint in raw_endpoints:
        for dest in endpoint["destinations"]:
            if not dest["method"]:
                dest["method"] = "POST"
            if dest["timeout"] == 0:
                dest["timeout"] = DEFAULT_TIMEOUT
            if dest["retries"] < 0:
                dest["retries"] = 0
            # Only a destination that retries needs a delay
            if dest["retry_delay"] == 0 and dest["retries"] > 0:
                dest["retry_delay"] = DEFAULT_RETRY_DELAY


def _valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate(config: Config, raw_endpoints: list[dict]) -> None:
    if not 0 <= config.server.port <= 65535:
        raise ConfigError(f"invalid server port: {config.server.port}")

    if config.logging.level not in VALID_LEVELS:
        raise ConfigError(f"invalid logging level: {config.logging.level}")
    if config.logging.format not in VALID_FORMATS:
        raise ConfigError(f"invalid logging format: {config.logging.format}")
    if config.logging.output not in VALID_OUTPUTS:
        raise ConfigError(f"invalid logging output: {config.logging.output}")
    if config.logging.output == "file" and not config.logging.file_path:
        raise ConfigError("file_path is required when output is file")

    if not raw_endpoints:
        raise ConfigError("at least one endpoint is required")

    for i, endpoint in enumerate(raw_endpoints):
        if not endpoint["path"]:
            raise ConfigError(f"endpoint[{i}]: path is required")
        if not endpoint["path"].startswith("/"):
            raise ConfigError(f"endpoint[{i}]: path must start with /")
        if not endpoint["destinations"]:
            raise ConfigError(f"endpoint[{i}]: at least one destination is required")

        for j, dest in enumerate(endpoint["destinations"]):
            where = f"endpoint[{i}].destination[{j}]"
            if not dest["url"]:
                raise ConfigError(f"{where}: url is required")
            if not _valid_url(dest["url"]):
                raise ConfigError(f"{where}: invalid url: {dest['url']}")
            if dest["method"].upper() not in VALID_METHODS:
                raise ConfigError(f"{where}: invalid method: {dest['method']}")
            if dest["timeout"] < 0:
                raise ConfigError(f"{where}: timeout cannot be negative")
            if dest["retries"] < 0:
                raise ConfigError(f"{where}: retries cannot be negative")
            if dest["retry_delay"] < 0:
                raise ConfigError(f"{where}: retry_delay cannot be negative")


def _build_endpoints(raw_endpoints: list[dict]) -> list[Endpoint]:
    return [
        Endpoint(
            path=endpoint["path"],
            destinations=tuple(
                Destination(**{**dest, "method": dest["method"].upper()})
                for dest in endpoint["destinations"]
            ),
        )
        for endpoint in raw_endpoints
    ]


def load_config_data(data: dict, environ=None) -> Config:
    """Build a validated Config from already-parsed YAML data."""
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping")
    config, raw_endpoints = _parse(data)
    apply_environment_overrides(config, environ)
    set_default_values(config, raw_endpoints)
    validate(config, raw_endpoints)
    config.endpoints = _build_endpoints(raw_endpoints)
    return config


def load_config(config_path: str | Path, environ=None) -> Config:
    """
    Load the proxy configuration from a YAML file.

    Args:
        config_path: Path to the YAML file
        environ: Environment mapping for overrides (defaults to os.environ)

    Returns:
        Validated Config
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"config file does not exist: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file: {e}")

    return load_config_data(data or {}, environ)
