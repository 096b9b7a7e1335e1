"""Google Routes v2 / Distance Matrix routing provider."""

from .client import GoogleRoutingClient

__all__ = ["GoogleRoutingClient"]
