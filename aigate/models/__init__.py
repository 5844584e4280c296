from .alerts import Alert, AlertHandle, AlertSeverity, AlertType, CostSummary
from .provider import (
    HealthLevel,
    HealthStatus,
    HealthSummary,
    ProviderCapabilities,
    ProviderConfig,
    ProviderMetricsSnapshot,
)
from .routing import ProviderLoadInfo, RoutingMode, RoutingStrategy
from .selection import (
    ProviderAlternative,
    ProviderRecommendation,
    ProviderScore,
    ProviderSelectionCriteria,
    ScoreBreakdown,
)

__all__ = [
    "Alert",
    "AlertHandle",
    "AlertSeverity",
    "AlertType",
    "CostSummary",
    "HealthLevel",
    "HealthStatus",
    "HealthSummary",
    "ProviderAlternative",
    "ProviderCapabilities",
    "ProviderConfig",
    "ProviderLoadInfo",
    "ProviderMetricsSnapshot",
    "ProviderRecommendation",
    "ProviderScore",
    "ProviderSelectionCriteria",
    "RoutingMode",
    "RoutingStrategy",
    "ScoreBreakdown",
]
