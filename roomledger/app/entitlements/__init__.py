"""Entitlements domain models and services."""

from .catalog import (
    BASE_CAPABILITIES,
    PLAN_CATALOG,
    USAGE_METER_CATALOG,
    MeterQuota,
    PlanDefinition,
    UsageMeterDefinition,
    build_capabilities_for_plan,
    build_usage_meter_summary,
    get_meter_definition,
    get_plan_definition,
    is_entitled_status,
    normalize_plan_id,
    resolve_usage_meter_quota,
)
from .models import (
    BillingInterval,
    Capability,
    CapabilitySet,
    EntitlementSnapshot,
    EntitlementSource,
    MeterSummary,
    PlanKey,
    PlanTier,
    SubscriptionStatus,
)
from .service import EntitlementService, billing_state

__all__ = [
    "BASE_CAPABILITIES",
    "PLAN_CATALOG",
    "USAGE_METER_CATALOG",
    "MeterQuota",
    "PlanDefinition",
    "UsageMeterDefinition",
    "build_capabilities_for_plan",
    "build_usage_meter_summary",
    "get_meter_definition",
    "get_plan_definition",
    "is_entitled_status",
    "normalize_plan_id",
    "resolve_usage_meter_quota",
    "BillingInterval",
    "Capability",
    "CapabilitySet",
    "EntitlementSnapshot",
    "EntitlementSource",
    "MeterSummary",
    "PlanKey",
    "PlanTier",
    "SubscriptionStatus",
    "EntitlementService",
    "billing_state",
]
