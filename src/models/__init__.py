from .destination import Destination, Endpoint
from .delivery import DeliveryAttempt, DeliveryOutcome, DeliveryStatus

__all__ = [
    "Destination", "Endpoint",
    "DeliveryAttempt", "DeliveryOutcome", "DeliveryStatus",
]
