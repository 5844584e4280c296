from .failover import CircuitBreaker, ProviderManager
from .scoring import SelectionEngine
from .strategy import RoutingStrategyController

__all__ = [
    "CircuitBreaker",
    "ProviderManager",
    "RoutingStrategyController",
    "SelectionEngine",
]
