from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, List, Optional

import httpx

from aigate.errors import ProviderNotFound
from aigate.logging_config import logger
from aigate.provider.base import ProviderAdapter
from aigate.provider.config import load_provider_configs
from aigate.provider.http_adapter import build_adapter


class ProviderRegistry:
    """
    Immutable name -> adapter mapping built once at process start and
    handed to every component that needs to reach providers.
    """

    def __init__(self, adapters: Iterable[ProviderAdapter]) -> None:
        by_name = {}
        for adapter in adapters:
            if adapter.name in by_name:
                raise ValueError(f"Duplicate provider name: {adapter.name}")
            by_name[adapter.name] = adapter
        self._adapters = MappingProxyType(by_name)

    def get(self, name: str) -> ProviderAdapter:
        try:
            return self._adapters[name]
        except KeyError:
            raise ProviderNotFound(name) from None

    def names(self) -> List[str]:
        return list(self._adapters.keys())

    def adapters(self) -> List[ProviderAdapter]:
        return list(self._adapters.values())

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __iter__(self) -> Iterator[ProviderAdapter]:
        return iter(self._adapters.values())

    def __len__(self) -> int:
        return len(self._adapters)


def build_registry_from_settings(
    *, client: Optional[httpx.AsyncClient] = None
) -> ProviderRegistry:
    """
    Build the registry from LLM_PROVIDERS / LLM_PROVIDER_<id>_* variables.
    """
    adapters: List[ProviderAdapter] = []
    seen = set()
    for cfg in load_provider_configs():
        if cfg.name in seen:
            logger.warning(
                "Skipping provider %s: name %r already registered", cfg.id, cfg.name
            )
            continue
        seen.add(cfg.name)
        adapters.append(build_adapter(cfg, client=client))
    logger.info("Provider registry initialised with %d provider(s)", len(adapters))
    return ProviderRegistry(adapters)


__all__ = ["ProviderRegistry", "build_registry_from_settings"]
