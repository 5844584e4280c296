import hashlib
import time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


UrgencyLevel = Literal["LOW", "MEDIUM", "HIGH"]


class ProviderSelectionCriteria(BaseModel):
    """
    Caller constraints and preferences for picking a provider.
    All fields are optional; an empty criteria object selects among
    every available provider with the default weights.
    """

    content_type: Optional[str] = Field(None, description="Required content type")
    language: Optional[str] = Field(None, description="Required output language")
    min_quality_score: Optional[float] = Field(None, ge=0.0, le=10.0)
    max_cost_per_token: Optional[float] = Field(None, gt=0.0)
    expected_token_count: Optional[int] = Field(None, ge=0)
    urgency_level: Optional[UrgencyLevel] = None
    prioritize_cost: bool = False
    prioritize_quality: bool = False
    prioritize_speed: bool = False
    prioritize_reliability: bool = False

    def signature(self) -> str:
        """
        Stable hash of the criteria, used as recommendation cache key.
        """
        payload = self.model_dump_json(exclude_none=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ScoreBreakdown(BaseModel):
    cost: float = Field(0.0, ge=0.0, le=1.0)
    quality: float = Field(0.0, ge=0.0, le=1.0)
    availability: float = Field(0.0, ge=0.0, le=1.0)
    response_time: float = Field(0.0, ge=0.0, le=1.0)
    load: float = Field(0.0, ge=0.0, le=1.0)
    reliability: float = Field(0.0, ge=0.0, le=1.0)

    def axes(self) -> dict[str, float]:
        return self.model_dump()


class ProviderScore(BaseModel):
    provider: str
    total_score: float = Field(..., ge=0.0, le=1.0)
    score_breakdown: ScoreBreakdown
    scoring_reason: str = ""


class ProviderAlternative(BaseModel):
    provider: str
    score: float = Field(..., ge=0.0, le=1.0)
    reason: str
    score_breakdown: ScoreBreakdown


class ProviderRecommendation(BaseModel):
    """
    Result of one selection: the winning provider plus up to two ranked
    fallbacks, a confidence value and a textual risk assessment.
    """

    primary_provider: str
    primary_score: float = Field(..., ge=0.0, le=1.0)
    score_breakdown: ScoreBreakdown
    alternatives: List[ProviderAlternative] = Field(default_factory=list, max_length=2)
    optimization_reason: str = ""
    confidence: float = Field(..., ge=0.0, le=1.0)
    risk_assessment: str
    warnings: List[str] = Field(default_factory=list)
    generated_at: float = Field(default_factory=time.time)


__all__ = [
    "ProviderAlternative",
    "ProviderRecommendation",
    "ProviderScore",
    "ProviderSelectionCriteria",
    "ScoreBreakdown",
    "UrgencyLevel",
]
