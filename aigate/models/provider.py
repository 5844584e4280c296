from enum import Enum
from typing import FrozenSet, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, model_validator


class HealthLevel(str, Enum):
    """
    Runtime health classification of a provider, ordered by severity.
    """

    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    UNHEALTHY = "UNHEALTHY"
    DOWN = "DOWN"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    HealthLevel.HEALTHY: 0,
    HealthLevel.DEGRADED: 1,
    HealthLevel.UNHEALTHY: 2,
    HealthLevel.DOWN: 3,
}


class ProviderCapabilities(BaseModel):
    """
    Static capability metadata declared by a provider at registration.
    """

    model_config = ConfigDict(frozen=True)

    supported_content_types: FrozenSet[str] = Field(
        default_factory=frozenset, description="Content types the provider can generate"
    )
    supported_languages: FrozenSet[str] = Field(
        default_factory=frozenset, description="Supported output languages"
    )
    supported_tones: FrozenSet[str] = Field(
        default_factory=frozenset, description="Supported writing tones"
    )
    max_tokens_per_request: int = Field(4000, gt=0)
    max_requests_per_minute: int = Field(60, gt=0)
    min_quality_score: float = Field(0.0, ge=0.0, le=10.0)
    max_quality_score: float = Field(10.0, ge=0.0, le=10.0)
    supports_streaming: bool = False
    supports_function_calling: bool = False
    supports_image_generation: bool = False
    supports_image_analysis: bool = False

    @property
    def quality_midpoint(self) -> float:
        return (self.min_quality_score + self.max_quality_score) / 2.0


class ProviderConfig(BaseModel):
    """
    Static configuration for a generation provider, usually loaded from env.
    """

    id: str = Field(..., description="Provider unique identifier (short slug)")
    name: str = Field(..., description="Provider name used as metrics/routing key")
    kind: Literal["openai", "gemini"] = Field(
        "openai", description="Wire protocol family of the upstream API"
    )
    base_url: HttpUrl = Field(..., description="API base URL")
    api_key: str = Field(..., description="API authentication key or token")
    model: str = Field(..., description="Upstream model used for generation")
    models_path: Optional[str] = Field(
        None, description="Path used by the liveness probe; defaults per kind"
    )
    cost_per_token: float = Field(
        0.0, description="Blended price per token in USD", ge=0.0
    )
    response_time_threshold_ms: Optional[int] = Field(
        None,
        description="Average response time above which the provider counts as DEGRADED",
        gt=0,
    )
    daily_budget: Optional[float] = Field(None, description="Daily budget override (USD)", gt=0)
    monthly_budget: Optional[float] = Field(
        None, description="Monthly budget override (USD)", gt=0
    )
    capabilities: ProviderCapabilities = Field(default_factory=ProviderCapabilities)


class HealthStatus(BaseModel):
    """
    Derived health of one provider, written only by the health monitor.
    """

    provider_name: str = Field(..., description="Provider name")
    health_level: HealthLevel = Field(..., description="Health classification")
    is_available: bool = Field(..., description="Whether the provider may receive traffic")
    consecutive_failures: int = Field(0, ge=0)
    error_rate: float = Field(0.0, ge=0.0, le=1.0)
    current_response_time: float = Field(
        0.0, description="Current response time in milliseconds", ge=0.0
    )
    last_success: Optional[float] = Field(
        None, description="Last successful request (epoch seconds)"
    )
    last_failure: Optional[float] = Field(
        None, description="Last failed request (epoch seconds)"
    )
    message: str = Field("", description="Human readable explanation")
    last_health_check: float = Field(..., description="Check timestamp (epoch seconds)")

    @model_validator(mode="after")
    def _down_is_never_available(self) -> "HealthStatus":
        if self.health_level == HealthLevel.DOWN and self.is_available:
            self.is_available = False
        return self


class HealthSummary(BaseModel):
    total: int = 0
    healthy: int = 0
    degraded: int = 0
    unhealthy: int = 0
    down: int = 0
    overall_healthy: bool = True


class ProviderMetricsSnapshot(BaseModel):
    """
    Read view over a provider's rolling counters.
    """

    provider_name: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    consecutive_failures: int = 0
    fallback_requests: int = 0
    success_rate: float = Field(1.0, ge=0.0, le=1.0)
    error_rate: float = Field(0.0, ge=0.0, le=1.0)
    average_response_time: float = Field(0.0, description="Milliseconds, over successes")
    min_response_time: Optional[float] = None
    max_response_time: Optional[float] = None
    average_quality_score: float = Field(0.0, ge=0.0, le=10.0)
    quality_measurements: int = 0
    current_load: float = Field(0.0, ge=0.0, le=1.0)
    total_cost: float = 0.0
    last_success: Optional[float] = None
    last_failure: Optional[float] = None


__all__ = [
    "HealthLevel",
    "HealthStatus",
    "HealthSummary",
    "ProviderCapabilities",
    "ProviderConfig",
    "ProviderMetricsSnapshot",
]
