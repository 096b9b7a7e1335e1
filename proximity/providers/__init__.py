"""
Tiered routing provider abstraction.

Each tier (Google Routes v2, Google Distance Matrix, local approximation)
implements the same RoutingProvider interface and returns the same result
models, so the manager can move to the next tier without special-casing any
of them.
"""

from .base import ProviderType, RoutingProvider, TravelMode, normalize_mode
from .models import Coordinate, DirectionsResult, DirectionsStep, MatrixResult, RouteResult
from .manager import RoutingProviderManager, create_routing_manager

__all__ = [
    'ProviderType',
    'RoutingProvider',
    'TravelMode',
    'normalize_mode',
    'Coordinate',
    'RouteResult',
    'MatrixResult',
    'DirectionsResult',
    'DirectionsStep',
    'RoutingProviderManager',
    'create_routing_manager',
]
