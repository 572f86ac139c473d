from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.app.entitlements import EntitlementSnapshot, PlanKey, SubscriptionStatus, build_capabilities_for_plan
from roomledger.app.errors import InvalidMeterError
from roomledger.app.feature_gates import (
    EntitlementContext,
    FeatureGateError,
    require_capability,
    require_meter_capability,
)


@pytest.fixture
def host_snapshot() -> EntitlementSnapshot:
    return EntitlementSnapshot(
        organization_id="org-1",
        plan_id=PlanKey.HOST_MONTHLY,
        status=SubscriptionStatus.ACTIVE,
        entitled=True,
        capabilities=build_capabilities_for_plan("host_monthly", "active").to_flags(),
    )


@pytest.fixture
def free_snapshot() -> EntitlementSnapshot:
    return EntitlementSnapshot(organization_id="org-2")


def test_require_capability_allows_enabled_flag(host_snapshot: EntitlementSnapshot) -> None:
    require_capability(host_snapshot.capabilities, "ai.generate_content")


def test_require_capability_raises_when_missing(free_snapshot: EntitlementSnapshot) -> None:
    with pytest.raises(FeatureGateError) as exc:
        require_capability(free_snapshot.capabilities, "billing.invoice_drafts")

    assert exc.value.code == "permission-denied"
    assert exc.value.payload["missing_capability"] == "billing.invoice_drafts"
    assert exc.value.payload["reason"] == "capability-required"


def test_meter_gate_uses_the_meter_capability(host_snapshot, free_snapshot) -> None:
    require_meter_capability(host_snapshot.capabilities, "apple_music_request")

    with pytest.raises(FeatureGateError) as exc:
        require_meter_capability(free_snapshot.capabilities, "apple_music_request")
    assert exc.value.capability == "api.apple_music"

    with pytest.raises(InvalidMeterError):
        require_meter_capability(host_snapshot.capabilities, "fax_pages")


def test_entitlement_context_helpers(host_snapshot: EntitlementSnapshot, free_snapshot: EntitlementSnapshot) -> None:
    context = EntitlementContext(host_snapshot)

    assert context.has("api.youtube_data") is True
    assert context.entitled is True
    assert context.plan == PlanKey.HOST_MONTHLY
    context.require("billing.invoice_drafts")
    context.require_meter("youtube_data_request")

    with pytest.raises(FeatureGateError):
        EntitlementContext(free_snapshot).require("ai.generate_content")


def test_feature_gate_error_converts_to_http_exception() -> None:
    error = FeatureGateError("ai.generate_content", "flag missing")
    http_exc = error.to_http_exception()

    assert http_exc.status_code == 403
    assert http_exc.detail["error"] == "permission-denied"
    assert http_exc.detail["message"] == "flag missing"
