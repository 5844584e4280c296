from .routing_service import ProviderRoutingService, ProviderStatusView

__all__ = ["ProviderRoutingService", "ProviderStatusView"]
