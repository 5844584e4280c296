import time
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field


class RoutingMode(str, Enum):
    ROUND_ROBIN = "ROUND_ROBIN"
    LOAD_BALANCED = "LOAD_BALANCED"
    PERFORMANCE_BASED = "PERFORMANCE_BASED"


class ProviderLoadInfo(BaseModel):
    """
    Per-provider view used by the routing controller.
    """

    provider_name: str
    current_load: float = Field(0.0, ge=0.0, le=1.0)
    average_response_time: float = Field(0.0, ge=0.0)
    success_rate: float = Field(1.0, ge=0.0, le=1.0)
    quality_score: float = Field(0.0, ge=0.0, le=10.0)
    is_overloaded: bool = False


class RoutingStrategy(BaseModel):
    """
    System-wide routing policy: mode, traffic weights, failover order and
    resilience parameters.
    """

    mode: RoutingMode
    weights: Dict[str, float] = Field(
        default_factory=dict, description="provider -> share of traffic, sums to 1"
    )
    load_balancing_enabled: bool = False
    failover_order: List[str] = Field(default_factory=list)
    max_retries: int = Field(2, ge=0)
    retry_delay_ms: int = Field(1000, ge=0)
    circuit_breaker_threshold: float = Field(0.5, ge=0.0, le=1.0)
    optimization_reason: str = ""
    last_optimized: float = Field(default_factory=time.time)


__all__ = ["ProviderLoadInfo", "RoutingMode", "RoutingStrategy"]
