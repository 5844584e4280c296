from .base import GenerationRequest, GenerationResult, ProviderAdapter
from .registry import ProviderRegistry, build_registry_from_settings

__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "ProviderAdapter",
    "ProviderRegistry",
    "build_registry_from_settings",
]
