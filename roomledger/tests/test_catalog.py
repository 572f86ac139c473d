from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.app.entitlements import (
    BASE_CAPABILITIES,
    Capability,
    CapabilitySet,
    PlanKey,
    SubscriptionStatus,
    build_capabilities_for_plan,
    build_usage_meter_summary,
    get_plan_definition,
    normalize_plan_id,
    resolve_usage_meter_quota,
)
from roomledger.app.entitlements.catalog import apply_legacy_tier_flags, to_whole_number


def test_unknown_plan_ids_fall_back_to_free() -> None:
    assert normalize_plan_id("platinum_forever") == PlanKey.FREE
    assert normalize_plan_id(None) == PlanKey.FREE
    assert normalize_plan_id(" host_annual ") == PlanKey.HOST_ANNUAL
    assert get_plan_definition("platinum_forever") is None


def test_unknown_status_is_not_entitled() -> None:
    assert SubscriptionStatus.parse("ACTIVE") == SubscriptionStatus.ACTIVE
    assert SubscriptionStatus.parse("mystery") == SubscriptionStatus.INACTIVE
    assert SubscriptionStatus.PAST_DUE.is_entitled is True
    assert SubscriptionStatus.CANCELED.is_entitled is False


def test_enum_arguments_resolve_like_their_values() -> None:
    assert PlanKey.parse(PlanKey.HOST_MONTHLY) is PlanKey.HOST_MONTHLY
    assert SubscriptionStatus.parse(SubscriptionStatus.ACTIVE) is SubscriptionStatus.ACTIVE
    assert get_plan_definition(PlanKey.HOST_ANNUAL).key == PlanKey.HOST_ANNUAL

    capabilities = build_capabilities_for_plan(PlanKey.HOST_MONTHLY, SubscriptionStatus.ACTIVE)
    assert capabilities.ai_generate_content is True
    assert capabilities == build_capabilities_for_plan("host_monthly", "active")

    quota = resolve_usage_meter_quota("ai_generate_content", PlanKey.HOST_MONTHLY, SubscriptionStatus.ACTIVE)
    assert (quota.included, quota.hard_limit, quota.billable_unit_rate_cents) == (750, 2500, 3)


def test_host_plan_grants_every_capability_only_while_entitled() -> None:
    active = build_capabilities_for_plan("host_monthly", "active").to_flags()
    assert all(active.values())

    canceled = build_capabilities_for_plan("host_monthly", "canceled")
    assert canceled == BASE_CAPABILITIES
    assert canceled.to_flags()[Capability.WORKSPACE_ONBOARDING.value] is True
    assert canceled.to_flags()[Capability.AI_GENERATE_CONTENT.value] is False


def test_vip_plan_keeps_base_capabilities() -> None:
    assert build_capabilities_for_plan("vip_monthly", "active") == BASE_CAPABILITIES


def test_capability_flags_ignore_unknown_keys() -> None:
    capabilities = CapabilitySet.from_flags({"api.youtube_data": True, "teleport.enabled": True})

    flags = capabilities.to_flags()
    assert "teleport.enabled" not in flags
    assert flags["api.youtube_data"] is True
    assert set(flags) == {capability.value for capability in Capability}


def test_legacy_flags_enable_catalog_access() -> None:
    upgraded = apply_legacy_tier_flags(BASE_CAPABILITIES, {"foundingHost": True})

    assert upgraded.api_youtube_data is True
    assert upgraded.api_apple_music is True
    assert upgraded.ai_generate_content is False
    assert apply_legacy_tier_flags(BASE_CAPABILITIES, {"foundingHost": "yes"}) == BASE_CAPABILITIES


@pytest.mark.parametrize(
    ("meter_id", "plan", "included", "hard_limit", "rate"),
    [
        ("ai_generate_content", "host_monthly", 750, 2500, 3),
        ("ai_generate_content", "host_annual", 1200, 4000, 2),
        ("youtube_data_request", "host_monthly", 6000, 25000, 1),
        ("apple_music_request", "host_annual", 3000, 15000, 2),
    ],
)
def test_meter_quota_by_plan(meter_id: str, plan: str, included: int, hard_limit: int, rate: int) -> None:
    quota = resolve_usage_meter_quota(meter_id, plan, "active")

    assert quota.included == included
    assert quota.hard_limit == hard_limit
    assert quota.billable_unit_rate_cents == rate
    assert quota.overage_rate_cents == rate


def test_meter_quota_is_zero_when_not_entitled_or_unknown() -> None:
    assert resolve_usage_meter_quota("ai_generate_content", "host_monthly", "unpaid").hard_limit == 0
    unknown = resolve_usage_meter_quota("fax_pages", "host_monthly", "active")
    assert unknown.included == 0
    assert unknown.billable_unit_rate_cents == 0


def test_usage_summary_splits_included_and_overage() -> None:
    quota = resolve_usage_meter_quota("ai_generate_content", "host_monthly", "active")
    summary = build_usage_meter_summary("ai_generate_content", 800, quota, "202405")

    assert summary.overage_units == 50
    assert summary.estimated_overage_cents == 150
    assert summary.remaining_included == 0
    assert summary.remaining_to_hard_limit == 1700
    assert summary.hard_limit_reached is False


def test_usage_summary_without_hard_limit_has_no_remaining_cap() -> None:
    summary = build_usage_meter_summary("ai_generate_content", 12, None)

    assert summary.hard_limit == 0
    assert summary.remaining_to_hard_limit is None
    assert summary.estimated_overage_cents == 0


def test_whole_number_coercion() -> None:
    assert to_whole_number("7.9") == 7
    assert to_whole_number(-3) == 0
    assert to_whole_number(float("nan"), default=4) == 4
    assert to_whole_number(None) == 0
