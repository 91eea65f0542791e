"""
TTS cost modelling.

Projects what serving spoken responses costs from a usage profile and a
per-character price table, compares optimization scenarios, and measures
actual spend from the generation log.

Cost per request is built in four steps:

1. Base cost: average characters × price per character, weighted by the
   provider distribution.
2. Caching: cache hits cost nothing at the provider, so the base cost is
   multiplied by ``1 - cache_hit_rate``.
3. Batching: batched calls amortize fixed per-call overhead; the uncached
   cost is multiplied by ``1 - batching_rate × batching_discount_factor``.
4. Segmentation: a response split into N segments needs N - 1 extra calls;
   each adds ``segment_overhead_ratio`` × the request cost, weighted by
   ``segmentation_rate``.

Everything except the historical functions is pure and synchronous.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Protocol

from ...schemas.costs import (
    BudgetStatus,
    CostBreakdown,
    CostEstimate,
    GenerationRecord,
    HistoricalCostSummary,
    ProviderPrice,
    ProviderPricing,
    ScenarioComparison,
    ScenarioSavings,
    UsageProfile,
)

logger = logging.getLogger(__name__)

DEFAULT_PRICING: ProviderPricing = {
    # $0.30 per 10k characters
    "elevenlabs": ProviderPrice(
        price_per_character=0.00003, model_name="eleven_multilingual_v2"
    ),
    # $0.15 per 10k characters
    "openai": ProviderPrice(price_per_character=0.000015, model_name="tts-1"),
}

DEFAULT_USAGE_PROFILE = UsageProfile(
    avg_text_length_words=50,
    avg_text_length_chars=250,
    requests_per_session=10,
    cache_hit_rate=0.3,
    batching_rate=0.2,
    segmentation_rate=0.1,
    avg_segments_per_long_response=2,
    provider_distribution={"elevenlabs": 0.7, "openai": 0.3},
    mode_distribution={"brief": 0.6, "full": 0.4},
)

# Rough average for English and Spanish responses.
CHARS_PER_WORD = 5
DAYS_PER_MONTH = 30

_PROVIDER_LABELS = {"elevenlabs": "ElevenLabs", "openai": "OpenAI"}
_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


class CostEstimationError(ValueError):
    """Raised when cost inputs are inconsistent."""


@dataclass(frozen=True)
class CostModelConstants:
    """Heuristic multipliers of the cost model.

    Neither value has an empirical derivation; both were observed on
    ElevenLabs/OpenAI traffic and may not transfer to other providers.

    Attributes:
        batching_discount_factor: Fraction of a request's cost saved when it
            is sent as part of a batch (amortized per-call overhead).
        segment_overhead_ratio: Extra cost of each additional segment call,
            as a fraction of the request cost.
    """

    batching_discount_factor: float = 0.2
    segment_overhead_ratio: float = 0.1

    def __post_init__(self) -> None:
        if not 0.0 <= self.batching_discount_factor <= 1.0:
            raise CostEstimationError("batching_discount_factor must be within [0, 1]")
        if self.segment_overhead_ratio < 0:
            raise CostEstimationError("segment_overhead_ratio must not be negative")


DEFAULT_COST_CONSTANTS = CostModelConstants()


class GenerationLogReader(Protocol):
    async def list_generation_records(
        self, start: datetime, end: datetime
    ) -> list[GenerationRecord]: ...


def _resolve_profile(profile: UsageProfile | Mapping[str, Any]) -> UsageProfile:
    if isinstance(profile, UsageProfile):
        return profile
    return UsageProfile.model_validate(dict(profile))


def resolve_pricing(pricing: Mapping[str, Any] | None) -> ProviderPricing:
    """Normalize a pricing table.

    Values may be ``ProviderPrice`` objects, mappings with
    ``price_per_character``/``model_name``, or a bare price per character.
    """
    if pricing is None:
        return DEFAULT_PRICING
    resolved: ProviderPricing = {}
    for name, value in pricing.items():
        if isinstance(value, ProviderPrice):
            resolved[name] = value
        elif isinstance(value, (int, float)):
            resolved[name] = ProviderPrice(price_per_character=value, model_name=name)
        else:
            resolved[name] = ProviderPrice.model_validate(value)
    return resolved


def _weighted_price(profile: UsageProfile, pricing: ProviderPricing) -> float:
    missing = sorted(name for name in profile.provider_distribution if name not in pricing)
    if missing:
        raise CostEstimationError(f"No pricing for provider(s): {', '.join(missing)}")
    return sum(
        pricing[name].price_per_character * weight
        for name, weight in profile.provider_distribution.items()
    )


def estimate_costs(
    profile: UsageProfile | Mapping[str, Any],
    monthly_users: int,
    pricing: Mapping[str, Any] | None = None,
    constants: CostModelConstants | None = None,
) -> CostEstimate:
    """
    Project per-request, per-session and monthly cost for a usage profile.

    Args:
        profile: Usage profile; rates must be in [0, 1], distributions sum to 1
        monthly_users: Number of sessions per month (one session per user)
        pricing: Provider price table, ``DEFAULT_PRICING`` when omitted
        constants: Batching/segmentation heuristics

    Returns:
        CostEstimate whose provider and mode breakdowns each sum to monthly_cost

    Raises:
        ValidationError: The profile is invalid
        CostEstimationError: Pricing lacks a provider, or monthly_users < 0
    """
    profile = _resolve_profile(profile)
    prices = resolve_pricing(pricing)
    constants = constants or DEFAULT_COST_CONSTANTS
    if monthly_users < 0:
        raise CostEstimationError("monthly_users must not be negative")

    base_cost = profile.avg_text_length_chars * _weighted_price(profile, prices)
    cost_with_cache = base_cost * (1 - profile.cache_hit_rate)
    batching_savings = (
        cost_with_cache * profile.batching_rate * constants.batching_discount_factor
    )
    batched_cost = cost_with_cache - batching_savings
    segmentation_overhead = (
        batched_cost
        * constants.segment_overhead_ratio
        * profile.segmentation_rate
        * (profile.avg_segments_per_long_response - 1)
    )

    cost_per_request = batched_cost + segmentation_overhead
    cost_per_session = cost_per_request * profile.requests_per_session
    monthly_cost = cost_per_session * monthly_users
    monthly_requests = profile.requests_per_session * monthly_users

    return CostEstimate(
        cost_per_request=cost_per_request,
        cost_per_session=cost_per_session,
        cost_per_user=cost_per_session,
        monthly_users=monthly_users,
        monthly_cost=monthly_cost,
        breakdown=CostBreakdown(
            by_provider={
                name: monthly_cost * weight
                for name, weight in profile.provider_distribution.items()
            },
            by_mode={
                mode: monthly_cost * weight
                for mode, weight in profile.mode_distribution.items()
            },
            cached=base_cost * profile.cache_hit_rate * monthly_requests,
            uncached=cost_with_cache * monthly_requests,
            batched=batching_savings * monthly_requests,
            segmented=segmentation_overhead * monthly_requests,
        ),
    )


def compare_scenarios(
    profile: UsageProfile | Mapping[str, Any],
    monthly_users: int,
    pricing: Mapping[str, Any] | None = None,
    constants: CostModelConstants | None = None,
) -> ScenarioComparison:
    """
    Compare monthly cost without optimizations, with caching only, with
    batching only, and with both.

    Segmentation overhead depends on response length rather than on an
    optimization, so every scenario keeps the profile's segmentation rate.
    That keeps each saving a pure discount and guarantees
    ``combined >= caching`` and ``combined >= batching``.
    """
    profile = _resolve_profile(profile)

    def _estimate(**overrides: float) -> CostEstimate:
        return estimate_costs(
            profile.model_copy(update=overrides), monthly_users, pricing, constants
        )

    baseline = _estimate(cache_hit_rate=0.0, batching_rate=0.0)
    with_caching = _estimate(batching_rate=0.0)
    with_batching = _estimate(cache_hit_rate=0.0)
    with_all = _estimate()

    return ScenarioComparison(
        baseline=baseline,
        with_caching=with_caching,
        with_batching=with_batching,
        with_all=with_all,
        savings=ScenarioSavings(
            caching=baseline.monthly_cost - with_caching.monthly_cost,
            batching=baseline.monthly_cost - with_batching.monthly_cost,
            combined=baseline.monthly_cost - with_all.monthly_cost,
        ),
    )


def format_currency(amount: float, currency: str = "USD") -> str:
    """Render an amount for humans.

    Sub-cent amounts keep at least six decimals (more if needed to stay
    non-zero); larger amounts get thousands separators and two decimals.
    """
    symbol = _CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if value == 0:
        return f"{symbol}0.00"
    if value < 0.01:
        decimals = 6
        while round(value, decimals) == 0 and decimals < 12:
            decimals += 1
        return f"{sign}{symbol}{value:.{decimals}f}"
    return f"{sign}{symbol}{value:,.2f}"


def _provider_label(name: str) -> str:
    return _PROVIDER_LABELS.get(name, name.replace("_", " ").title())


def generate_cost_report(estimate: CostEstimate) -> str:
    """Render a cost estimate as a multi-section plain-text report."""

    breakdown = estimate.breakdown
    lines = [
        "=== TTS Cost Estimate Report ===",
        "",
        "Per Request/Session:",
        f"  Cost per request: {format_currency(estimate.cost_per_request)}",
        f"  Cost per session: {format_currency(estimate.cost_per_session)}",
        "",
        "Monthly Totals:",
        f"  Monthly users: {estimate.monthly_users:,}",
        f"  Monthly cost: {format_currency(estimate.monthly_cost)}",
        "",
        "Breakdown by Provider:",
    ]
    lines.extend(
        f"  {_provider_label(name)}: {format_currency(cost)}"
        for name, cost in breakdown.by_provider.items()
    )
    lines.append("")
    lines.append("Breakdown by Mode:")
    lines.extend(
        f"  {mode.title()}: {format_currency(cost)}"
        for mode, cost in breakdown.by_mode.items()
    )
    lines.extend(
        [
            "",
            "Optimization Impact:",
            f"  Cached (savings): {format_currency(breakdown.cached)}",
            f"  Uncached (costs): {format_currency(breakdown.uncached)}",
            f"  Batching (savings): {format_currency(breakdown.batched)}",
            f"  Segmentation (overhead): {format_currency(breakdown.segmented)}",
        ]
    )
    return "\n".join(lines)


def _list_price(record: GenerationRecord, pricing: ProviderPricing) -> float | None:
    price = pricing.get(record.provider)
    if price is None:
        return None
    return record.text_length * price.price_per_character


def record_cost(record: GenerationRecord, pricing: ProviderPricing) -> float:
    """Provider spend attributed to one log record."""

    if record.cached:
        return 0.0
    if record.actual_cost is not None:
        return record.actual_cost
    if record.estimated_cost is not None:
        return record.estimated_cost
    cost = _list_price(record, pricing)
    if cost is None:
        logger.warning("No pricing for provider %r; counting record as free", record.provider)
        return 0.0
    return cost


def _check_range(start: datetime, end: datetime) -> None:
    if end < start:
        raise CostEstimationError("end must not be earlier than start")


async def analyze_historical_costs(
    log: GenerationLogReader,
    start: datetime,
    end: datetime,
    pricing: Mapping[str, Any] | None = None,
) -> HistoricalCostSummary:
    """Aggregate logged generations in ``[start, end]`` into a cost summary."""

    _check_range(start, end)
    prices = resolve_pricing(pricing)
    records = await log.list_generation_records(start, end)

    total_cost = 0.0
    cache_savings = 0.0
    cache_hits = 0
    by_provider: dict[str, float] = defaultdict(float)
    by_mode: dict[str, float] = defaultdict(float)

    for record in records:
        cost = record_cost(record, prices)
        total_cost += cost
        by_provider[record.provider] += cost
        by_mode[record.mode or "unknown"] += cost
        if record.cached:
            cache_hits += 1
            cache_savings += _list_price(record, prices) or 0.0

    total_requests = len(records)
    period_days = (end - start).total_seconds() / 86400
    daily_avg_cost = total_cost / period_days if period_days > 0 else 0.0

    logger.info(
        "Analyzed %d TTS generations over %.1f days: %s",
        total_requests,
        period_days,
        format_currency(total_cost),
    )
    return HistoricalCostSummary(
        total_requests=total_requests,
        total_cost=total_cost,
        avg_cost_per_request=total_cost / total_requests if total_requests else 0.0,
        cache_hit_rate=cache_hits / total_requests if total_requests else 0.0,
        cache_savings=cache_savings,
        provider_breakdown=dict(by_provider),
        mode_breakdown=dict(by_mode),
        period_days=period_days,
        daily_avg_cost=daily_avg_cost,
        projected_monthly_cost=daily_avg_cost * DAYS_PER_MONTH,
    )


async def generate_usage_profile(
    log: GenerationLogReader, start: datetime, end: datetime
) -> UsageProfile:
    """Infer a usage profile from logged generations in ``[start, end]``.

    Batching is not visible in the log, so the default batching rate is
    kept. An empty range yields ``DEFAULT_USAGE_PROFILE``.
    """
    _check_range(start, end)
    records = await log.list_generation_records(start, end)
    if not records:
        return DEFAULT_USAGE_PROFILE.model_copy(deep=True)

    total = len(records)
    avg_chars = sum(record.text_length for record in records) / total

    providers = Counter(record.provider for record in records)
    modes = Counter(record.mode for record in records if record.mode)
    mode_total = sum(modes.values())
    sessions = {record.session_id for record in records if record.session_id}
    session_requests = sum(1 for record in records if record.session_id)
    segment_counts = [
        record.segment_count
        for record in records
        if record.segment_count is not None and record.segment_count > 1
    ]

    return UsageProfile(
        avg_text_length_words=round(avg_chars / CHARS_PER_WORD),
        avg_text_length_chars=round(avg_chars),
        requests_per_session=(
            session_requests / len(sessions)
            if sessions
            else DEFAULT_USAGE_PROFILE.requests_per_session
        ),
        cache_hit_rate=sum(1 for record in records if record.cached) / total,
        batching_rate=DEFAULT_USAGE_PROFILE.batching_rate,
        segmentation_rate=len(segment_counts) / total,
        avg_segments_per_long_response=(
            sum(segment_counts) / len(segment_counts)
            if segment_counts
            else DEFAULT_USAGE_PROFILE.avg_segments_per_long_response
        ),
        provider_distribution={name: count / total for name, count in providers.items()},
        mode_distribution=(
            {mode: count / mode_total for mode, count in modes.items()}
            if mode_total
            else dict(DEFAULT_USAGE_PROFILE.mode_distribution)
        ),
    )


async def check_daily_budget(
    log: GenerationLogReader,
    cap_usd: float | None,
    *,
    now: datetime | None = None,
    pricing: Mapping[str, Any] | None = None,
) -> BudgetStatus:
    """Compare the last 24 hours of spend with the daily hard cap."""

    end = now or datetime.now(timezone.utc)
    start = end - timedelta(hours=24)
    prices = resolve_pricing(pricing)
    records = await log.list_generation_records(start, end)
    spent = math.fsum(record_cost(record, prices) for record in records)
    exceeded = cap_usd is not None and spent >= cap_usd
    if exceeded:
        logger.error(
            "TTS daily hard cap reached: %s >= %s",
            format_currency(spent),
            format_currency(cap_usd or 0.0),
        )
    return BudgetStatus(
        spent_usd=spent,
        cap_usd=cap_usd,
        remaining_usd=max(0.0, cap_usd - spent) if cap_usd is not None else None,
        exceeded=exceeded,
        window_start=start,
    )


__all__ = [
    "CHARS_PER_WORD",
    "CostEstimationError",
    "CostModelConstants",
    "DEFAULT_COST_CONSTANTS",
    "DEFAULT_PRICING",
    "DEFAULT_USAGE_PROFILE",
    "GenerationLogReader",
    "analyze_historical_costs",
    "check_daily_budget",
    "compare_scenarios",
    "estimate_costs",
    "format_currency",
    "generate_cost_report",
    "generate_usage_profile",
    "record_cost",
    "resolve_pricing",
]
