from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AlertType(str, Enum):
    PROVIDER_DOWN = "PROVIDER_DOWN"
    HIGH_FAILURE_RATE = "HIGH_FAILURE_RATE"
    PERFORMANCE_DEGRADED = "PERFORMANCE_DEGRADED"
    SLOW_RESPONSE = "SLOW_RESPONSE"
    HIGH_ERROR_RATE = "HIGH_ERROR_RATE"
    DAILY_BUDGET_WARNING = "DAILY_BUDGET_WARNING"
    DAILY_BUDGET_EXCEEDED = "DAILY_BUDGET_EXCEEDED"
    MONTHLY_BUDGET_WARNING = "MONTHLY_BUDGET_WARNING"
    MONTHLY_BUDGET_EXCEEDED = "MONTHLY_BUDGET_EXCEEDED"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Alert(BaseModel):
    """
    One fired alert as stored in the per-provider history list.
    """

    provider_name: str
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: float = Field(..., description="Fire time (epoch seconds)")
    alert_id: Optional[str] = Field(
        None, description="Identifier returned by the system alert sink"
    )


class AlertHandle(BaseModel):
    alert_id: str
    alert_type: str
    severity: AlertSeverity
    message: str
    created_at: float


class CostSummary(BaseModel):
    """
    Derived spend view for one provider; never written directly.
    """

    provider_name: str
    daily_cost: float = 0.0
    monthly_cost: float = 0.0
    total_cost: float = 0.0
    daily_budget: float
    monthly_budget: float
    daily_usage_percent: float = 0.0
    monthly_usage_percent: float = 0.0
    is_daily_budget_warning: bool = False
    is_daily_budget_exceeded: bool = False
    is_monthly_budget_warning: bool = False
    is_monthly_budget_exceeded: bool = False


__all__ = ["Alert", "AlertHandle", "AlertSeverity", "AlertType", "CostSummary"]
