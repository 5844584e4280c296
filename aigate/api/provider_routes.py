from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from aigate.deps import get_routing_service
from aigate.errors import (
    AllProvidersFailed,
    NoProviderAvailable,
    ProviderNotFound,
    http_error,
    not_found,
    service_unavailable,
)
from aigate.logging_config import logger
from aigate.models import (
    Alert,
    CostSummary,
    HealthStatus,
    HealthSummary,
    ProviderRecommendation,
    ProviderSelectionCriteria,
    RoutingStrategy,
)
from aigate.provider.base import GenerationRequest, GenerationResult
from aigate.services.routing_service import ProviderRoutingService, ProviderStatusView


router = APIRouter(prefix="/providers", tags=["providers"])


class HealthCheckResponse(BaseModel):
    statuses: Dict[str, HealthStatus] = Field(default_factory=dict)
    checked: int


class CostRecordRequest(BaseModel):
    amount: float = Field(..., ge=0.0, description="Cost in USD to add")


class ProviderStatusesResponse(BaseModel):
    providers: List[ProviderStatusView] = Field(default_factory=list)
    total: int


class GenerateRequest(BaseModel):
    request: GenerationRequest
    criteria: Optional[ProviderSelectionCriteria] = None


@router.post("/recommend", response_model=ProviderRecommendation)
async def recommend_provider(
    criteria: ProviderSelectionCriteria,
    service: ProviderRoutingService = Depends(get_routing_service),
) -> ProviderRecommendation:
    """
    Return the best provider for the given criteria plus alternatives.
    """
    try:
        return await service.recommend(criteria)
    except NoProviderAvailable as exc:
        raise service_unavailable(str(exc), details=exc.criteria)


@router.get("/health", response_model=HealthSummary)
async def get_health_summary(
    service: ProviderRoutingService = Depends(get_routing_service),
) -> HealthSummary:
    return await service.health_summary()


@router.post("/health/check", response_model=HealthCheckResponse)
async def force_health_check(
    provider: Optional[str] = Query(None, description="Check only this provider"),
    service: ProviderRoutingService = Depends(get_routing_service),
) -> HealthCheckResponse:
    try:
        statuses = await service.force_health_check(provider)
    except ProviderNotFound as exc:
        raise not_found(f"Provider '{exc.provider_name}' not found")
    return HealthCheckResponse(statuses=statuses, checked=len(statuses))


@router.post("/routing/optimize", response_model=RoutingStrategy)
async def optimize_routing(
    service: ProviderRoutingService = Depends(get_routing_service),
) -> RoutingStrategy:
    return await service.optimize_routing()


@router.get("/routing", response_model=RoutingStrategy)
async def get_routing_strategy(
    service: ProviderRoutingService = Depends(get_routing_service),
) -> RoutingStrategy:
    return await service.current_routing_strategy()


@router.get("/costs", response_model=Dict[str, CostSummary])
async def get_cost_summary(
    service: ProviderRoutingService = Depends(get_routing_service),
) -> Dict[str, CostSummary]:
    return await service.cost_summary()


@router.get("/status", response_model=ProviderStatusesResponse)
async def get_provider_statuses(
    service: ProviderRoutingService = Depends(get_routing_service),
) -> ProviderStatusesResponse:
    providers = await service.provider_statuses()
    return ProviderStatusesResponse(providers=providers, total=len(providers))


@router.post("/generate", response_model=GenerationResult)
async def generate_content(
    body: GenerateRequest,
    service: ProviderRoutingService = Depends(get_routing_service),
) -> GenerationResult:
    try:
        return await service.generate(body.request, body.criteria)
    except NoProviderAvailable as exc:
        raise service_unavailable(str(exc), details=exc.criteria)
    except AllProvidersFailed as exc:
        logger.error("Generation failed after attempts=%s", exc.attempted)
        raise http_error(
            status.HTTP_502_BAD_GATEWAY,
            error="all_providers_failed",
            message=str(exc),
            details={"attempted": exc.attempted},
        )


@router.get("/{name}/alerts", response_model=List[Alert])
async def get_alert_history(
    name: str,
    limit: int = Query(20, ge=1, le=100),
    service: ProviderRoutingService = Depends(get_routing_service),
) -> List[Alert]:
    try:
        return await service.alert_history(name, limit)
    except ProviderNotFound:
        raise not_found(f"Provider '{name}' not found")


@router.post("/{name}/costs", status_code=status.HTTP_204_NO_CONTENT)
async def record_provider_cost(
    name: str,
    body: CostRecordRequest,
    service: ProviderRoutingService = Depends(get_routing_service),
) -> None:
    try:
        await service.record_cost(name, body.amount)
    except ProviderNotFound:
        raise not_found(f"Provider '{name}' not found")


__all__ = ["router"]
