"""Schemas for TTS cost modelling and historical cost analysis."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .tts import TTSMode

DISTRIBUTION_TOLERANCE = 1e-3


def _check_distribution(name: str, weights: dict[str, float]) -> None:
    if not weights:
        raise ValueError(f"{name} must not be empty")
    for key, value in weights.items():
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"{name}[{key!r}] must be within [0, 1], got {value}")
    total = sum(weights.values())
    if abs(total - 1.0) > DISTRIBUTION_TOLERANCE:
        raise ValueError(f"{name} must sum to 1, got {total:.4f}")


class ProviderPrice(BaseModel):
    price_per_character: float = Field(ge=0, description="USD per character.")
    model_name: str


ProviderPricing = dict[str, ProviderPrice]


class UsageProfile(BaseModel):
    """Observed or assumed usage pattern used to project TTS spend."""

    avg_text_length_words: float = Field(default=50, ge=0)
    avg_text_length_chars: float = Field(default=250, ge=0)
    requests_per_session: float = Field(default=10, ge=0)
    cache_hit_rate: float = Field(default=0.0, ge=0, le=1)
    batching_rate: float = Field(default=0.0, ge=0, le=1)
    segmentation_rate: float = Field(default=0.0, ge=0, le=1)
    avg_segments_per_long_response: float = Field(default=1.0, ge=1)
    provider_distribution: dict[str, float] = Field(
        default_factory=lambda: {"elevenlabs": 0.7, "openai": 0.3}
    )
    mode_distribution: dict[TTSMode, float] = Field(
        default_factory=lambda: {"brief": 0.6, "full": 0.4}
    )

    @model_validator(mode="after")
    def _validate_distributions(self) -> "UsageProfile":
        _check_distribution("provider_distribution", self.provider_distribution)
        _check_distribution("mode_distribution", dict(self.mode_distribution))
        return self


class CostBreakdown(BaseModel):
    by_provider: dict[str, float]
    by_mode: dict[str, float]
    cached: float = Field(description="Monthly provider spend avoided by cache hits.")
    uncached: float = Field(description="Monthly spend on cache misses before batching.")
    batched: float = Field(description="Monthly savings from batched calls.")
    segmented: float = Field(description="Monthly overhead of extra segment calls.")


class CostEstimate(BaseModel):
    cost_per_request: float
    cost_per_session: float
    cost_per_user: float
    monthly_users: int
    monthly_cost: float
    breakdown: CostBreakdown


class ScenarioSavings(BaseModel):
    caching: float
    batching: float
    combined: float


class ScenarioComparison(BaseModel):
    baseline: CostEstimate
    with_caching: CostEstimate
    with_batching: CostEstimate
    with_all: CostEstimate
    savings: ScenarioSavings


class GenerationRecord(BaseModel):
    """One row of the append-only generation log."""

    provider: str
    text_length: int = Field(ge=0)
    cached: bool = False
    actual_cost: float | None = None
    estimated_cost: float | None = None
    mode: TTSMode | None = None
    created_at: datetime
    session_id: str | None = None
    voice_name: str | None = None
    text_hash: str | None = None
    segment_count: int | None = Field(default=None, ge=1)


class HistoricalCostSummary(BaseModel):
    total_requests: int
    total_cost: float
    avg_cost_per_request: float
    cache_hit_rate: float
    cache_savings: float
    provider_breakdown: dict[str, float]
    mode_breakdown: dict[str, float]
    period_days: float
    daily_avg_cost: float
    projected_monthly_cost: float


class BudgetStatus(BaseModel):
    spent_usd: float
    cap_usd: float | None
    remaining_usd: float | None
    exceeded: bool
    window_start: datetime


class CostEstimateRequest(BaseModel):
    profile: UsageProfile
    monthly_users: int = Field(ge=0)
    pricing: ProviderPricing | None = None


__all__ = [
    "BudgetStatus",
    "CostBreakdown",
    "CostEstimate",
    "CostEstimateRequest",
    "GenerationRecord",
    "HistoricalCostSummary",
    "ProviderPrice",
    "ProviderPricing",
    "ScenarioComparison",
    "ScenarioSavings",
    "UsageProfile",
]
