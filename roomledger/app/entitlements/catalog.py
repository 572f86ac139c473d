"""Static catalog definitions for plans, capabilities and usage meters."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .models import (
    BillingInterval,
    Capability,
    CapabilitySet,
    MeterSummary,
    PlanKey,
    PlanTier,
    SubscriptionStatus,
)


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a subscription plan and the capabilities it grants."""

    key: PlanKey
    display_name: str
    tier: PlanTier
    interval: BillingInterval
    amount_cents: int
    capability_overrides: Mapping[str, bool] = field(default_factory=dict)

    def capabilities(self) -> CapabilitySet:
        return BASE_CAPABILITIES.merge(self.capability_overrides)


@dataclass(frozen=True)
class UsageMeterDefinition:
    """Describes a pay-per-use meter and its per-plan pricing."""

    id: str
    label: str
    unit: str
    capability: Capability
    included_by_plan: Mapping[PlanKey, int]
    hard_limit_by_plan: Mapping[PlanKey, int]
    overage_rate_cents_by_plan: Mapping[PlanKey, int]
    pass_through_unit_cost_cents_by_plan: Mapping[PlanKey, int]
    markup_multiplier_by_plan: Mapping[PlanKey, float]


@dataclass(frozen=True)
class MeterQuota:
    """Quota and pricing for one meter under a plan and subscription status."""

    meter_id: str
    included: int = 0
    hard_limit: int = 0
    overage_rate_cents: int = 0
    pass_through_unit_cost_cents: int = 0
    markup_multiplier: float = 1.0
    billable_unit_rate_cents: int = 0


BASE_CAPABILITIES = CapabilitySet(
    ai_generate_content=False,
    api_youtube_data=False,
    api_apple_music=False,
    billing_invoice_drafts=False,
    workspace_onboarding=True,
)

_HOST_CAPABILITIES = MappingProxyType({capability.value: True for capability in Capability})

PLAN_CATALOG: Mapping[PlanKey, PlanDefinition] = MappingProxyType(
    {
        PlanKey.FREE: PlanDefinition(
            key=PlanKey.FREE,
            display_name="Free",
            tier=PlanTier.FREE,
            interval=BillingInterval.NONE,
            amount_cents=0,
        ),
        PlanKey.VIP_MONTHLY: PlanDefinition(
            key=PlanKey.VIP_MONTHLY,
            display_name="VIP Monthly",
            tier=PlanTier.VIP,
            interval=BillingInterval.MONTH,
            amount_cents=999,
        ),
        PlanKey.HOST_MONTHLY: PlanDefinition(
            key=PlanKey.HOST_MONTHLY,
            display_name="Host Monthly",
            tier=PlanTier.HOST,
            interval=BillingInterval.MONTH,
            amount_cents=1500,
            capability_overrides=_HOST_CAPABILITIES,
        ),
        PlanKey.HOST_ANNUAL: PlanDefinition(
            key=PlanKey.HOST_ANNUAL,
            display_name="Host Annual",
            tier=PlanTier.HOST,
            interval=BillingInterval.YEAR,
            amount_cents=15000,
            capability_overrides=_HOST_CAPABILITIES,
        ),
    }
)


def _per_plan(free: float, vip: float, monthly: float, annual: float) -> Mapping[PlanKey, float]:
    return MappingProxyType(
        {
            PlanKey.FREE: free,
            PlanKey.VIP_MONTHLY: vip,
            PlanKey.HOST_MONTHLY: monthly,
            PlanKey.HOST_ANNUAL: annual,
        }
    )


USAGE_METER_CATALOG: Mapping[str, UsageMeterDefinition] = MappingProxyType(
    {
        "ai_generate_content": UsageMeterDefinition(
            id="ai_generate_content",
            label="AI generations",
            unit="request",
            capability=Capability.AI_GENERATE_CONTENT,
            included_by_plan=_per_plan(0, 0, 750, 1200),
            hard_limit_by_plan=_per_plan(0, 0, 2500, 4000),
            overage_rate_cents_by_plan=_per_plan(0, 0, 3, 2),
            pass_through_unit_cost_cents_by_plan=_per_plan(0, 0, 2, 1),
            markup_multiplier_by_plan=_per_plan(1, 1, 1.5, 2),
        ),
        "youtube_data_request": UsageMeterDefinition(
            id="youtube_data_request",
            label="YouTube Data API requests",
            unit="request",
            capability=Capability.API_YOUTUBE_DATA,
            included_by_plan=_per_plan(0, 0, 6000, 9000),
            hard_limit_by_plan=_per_plan(0, 0, 25000, 35000),
            overage_rate_cents_by_plan=_per_plan(0, 0, 1, 1),
            pass_through_unit_cost_cents_by_plan=_per_plan(0, 0, 1, 1),
            markup_multiplier_by_plan=_per_plan(1, 1, 1, 1),
        ),
        "apple_music_request": UsageMeterDefinition(
            id="apple_music_request",
            label="Apple Music API requests",
            unit="request",
            capability=Capability.API_APPLE_MUSIC,
            included_by_plan=_per_plan(0, 0, 2000, 3000),
            hard_limit_by_plan=_per_plan(0, 0, 10000, 15000),
            overage_rate_cents_by_plan=_per_plan(0, 0, 2, 2),
            pass_through_unit_cost_cents_by_plan=_per_plan(0, 0, 1, 1),
            markup_multiplier_by_plan=_per_plan(1, 1, 2, 2),
        ),
    }
)

# Pre-migration user profile flags that still unlock catalog search access.
LEGACY_TIER_FLAGS: Tuple[str, ...] = ("hostProLegacy", "foundingHost")
LEGACY_CAPABILITIES: Tuple[Capability, ...] = (
    Capability.API_YOUTUBE_DATA,
    Capability.API_APPLE_MUSIC,
    Capability.WORKSPACE_ONBOARDING,
)


def to_whole_number(value: object, default: int = 0) -> int:
    """Coerce to a non-negative integer, flooring fractions."""

    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(0, math.floor(number))


def get_plan_definition(plan_key: object) -> Optional[PlanDefinition]:
    """Return a plan definition, or ``None`` when the id is not in the catalog."""

    if isinstance(plan_key, PlanKey):
        return PLAN_CATALOG.get(plan_key)
    try:
        return PLAN_CATALOG[PlanKey(str(plan_key or "").strip())]
    except (KeyError, ValueError):
        return None


def normalize_plan_id(plan_key: object) -> PlanKey:
    """Map unknown or blank plan ids to ``free``."""

    return PlanKey.parse(plan_key)


def get_meter_definition(meter_id: str) -> Optional[UsageMeterDefinition]:
    return USAGE_METER_CATALOG.get(str(meter_id or "").strip())


def is_entitled_status(status: object) -> bool:
    return SubscriptionStatus.parse(status).is_entitled


def build_capabilities_for_plan(plan_key: object, status: object) -> CapabilitySet:
    """Derive capabilities: the base set, plus plan overrides only when entitled."""

    if not is_entitled_status(status):
        return BASE_CAPABILITIES
    plan = get_plan_definition(plan_key) or PLAN_CATALOG[PlanKey.FREE]
    return plan.capabilities()


def apply_legacy_tier_flags(capabilities: CapabilitySet, profile: Optional[Mapping[str, object]]) -> CapabilitySet:
    """Force-enable the legacy subset when any legacy tier flag is set on the profile."""

    if not profile:
        return capabilities
    if any(profile.get(flag) is True for flag in LEGACY_TIER_FLAGS):
        return capabilities.enable(LEGACY_CAPABILITIES)
    return capabilities


def resolve_usage_meter_quota(meter_id: str, plan_key: object, status: object) -> MeterQuota:
    """Resolve included units, hard limit and billable rate for a meter.

    Everything is zero unless the status is entitled. The billable rate is
    the pass-through cost times the markup when a pass-through cost exists,
    otherwise the flat configured overage rate. Hard limits and overage
    pricing are configured independently.
    """

    meter = get_meter_definition(meter_id)
    if meter is None:
        return MeterQuota(meter_id=str(meter_id or ""))

    plan = normalize_plan_id(plan_key)
    if not is_entitled_status(status):
        return MeterQuota(meter_id=meter.id)

    included = to_whole_number(meter.included_by_plan.get(plan, 0))
    hard_limit = to_whole_number(meter.hard_limit_by_plan.get(plan, 0))
    configured_rate = to_whole_number(meter.overage_rate_cents_by_plan.get(plan, 0))
    pass_through = to_whole_number(meter.pass_through_unit_cost_cents_by_plan.get(plan, 0))
    try:
        markup = float(meter.markup_multiplier_by_plan.get(plan, 1))
    except (TypeError, ValueError):
        markup = 1.0
    if not math.isfinite(markup) or markup <= 0:
        markup = 1.0

    if pass_through > 0:
        derived_rate = max(0, int(math.floor(pass_through * markup + 0.5)))
    else:
        derived_rate = configured_rate
    billable_rate = derived_rate or configured_rate

    return MeterQuota(
        meter_id=meter.id,
        included=included,
        hard_limit=hard_limit,
        overage_rate_cents=billable_rate,
        pass_through_unit_cost_cents=pass_through,
        markup_multiplier=markup,
        billable_unit_rate_cents=billable_rate,
    )


def build_usage_meter_summary(
    meter_id: str,
    used: object,
    quota: Optional[MeterQuota],
    period_key: str = "",
) -> MeterSummary:
    """Summarize usage against a quota snapshot."""

    meter = get_meter_definition(meter_id)
    quota = quota or MeterQuota(meter_id=meter_id)
    safe_used = to_whole_number(used)
    included = to_whole_number(quota.included)
    hard_limit = to_whole_number(quota.hard_limit)
    overage_rate = to_whole_number(quota.overage_rate_cents)
    billable_rate = to_whole_number(quota.billable_unit_rate_cents, overage_rate)
    try:
        markup = max(0.0, float(quota.markup_multiplier))
    except (TypeError, ValueError):
        markup = 1.0
    if not math.isfinite(markup):
        markup = 1.0
    overage_units = max(0, safe_used - included)

    return MeterSummary(
        meter_id=meter.id if meter else meter_id,
        label=meter.label if meter else meter_id,
        unit=meter.unit if meter else "unit",
        period=period_key,
        used=safe_used,
        included=included,
        overage_units=overage_units,
        overage_rate_cents=overage_rate,
        pass_through_unit_cost_cents=to_whole_number(quota.pass_through_unit_cost_cents),
        markup_multiplier=markup,
        billable_unit_rate_cents=billable_rate,
        estimated_overage_cents=overage_units * billable_rate,
        hard_limit=hard_limit,
        hard_limit_reached=hard_limit > 0 and safe_used >= hard_limit,
        remaining_included=max(0, included - safe_used),
        remaining_to_hard_limit=max(0, hard_limit - safe_used) if hard_limit > 0 else None,
    )


__all__ = [
    "BASE_CAPABILITIES",
    "LEGACY_CAPABILITIES",
    "LEGACY_TIER_FLAGS",
    "MeterQuota",
    "PLAN_CATALOG",
    "PlanDefinition",
    "USAGE_METER_CATALOG",
    "UsageMeterDefinition",
    "apply_legacy_tier_flags",
    "build_capabilities_for_plan",
    "build_usage_meter_summary",
    "get_meter_definition",
    "get_plan_definition",
    "is_entitled_status",
    "normalize_plan_id",
    "resolve_usage_meter_quota",
    "to_whole_number",
]
