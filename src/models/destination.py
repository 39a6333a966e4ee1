from dataclasses import dataclass, field


@dataclass(frozen=True)
class Destination:
    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 5.0  # seconds per attempt, 0 means no deadline
    retries: int = 0
    retry_delay: float = 0.0  # seconds between attempts


@dataclass(frozen=True)
class Endpoint:
    path: str
    destinations: tuple[Destination, ...]
