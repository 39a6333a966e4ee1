from .delivery import DeliveryTimeout, deliver
from .engine import DeliveryBatch, ForwardingEngine
from .logger import DeliveryLogger
from .registrar import EndpointRegistrar
from .retry import RetryDecision, RetryPolicy

__all__ = [
    "deliver",
    "DeliveryTimeout",
    "DeliveryBatch",
    "ForwardingEngine",
    "DeliveryLogger",
    "EndpointRegistrar",
    "RetryDecision",
    "RetryPolicy",
]
