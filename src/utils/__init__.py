from .factories import DestinationFactory, EndpointFactory, PayloadFactory

__all__ = ["DestinationFactory", "EndpointFactory", "PayloadFactory"]
