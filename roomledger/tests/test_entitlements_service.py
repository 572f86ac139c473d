from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.app.entitlements import (
    EntitlementService,
    EntitlementSource,
    PlanKey,
    SubscriptionStatus,
    billing_state,
)
from roomledger.app.store import InMemoryDocumentStore


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


def _resolve(store: InMemoryDocumentStore, organization_id):
    return asyncio.run(EntitlementService(store).resolve_entitlements(organization_id))


@pytest.mark.parametrize("organization_id", [None, "", "   ", "bad/id"])
def test_blank_or_malformed_ids_resolve_to_defaults(store, organization_id) -> None:
    snapshot = _resolve(store, organization_id)

    assert snapshot.organization_id is None
    assert snapshot.plan_id == PlanKey.FREE
    assert snapshot.entitled is False
    assert snapshot.source == EntitlementSource.DEFAULT
    assert snapshot.has("workspace.onboarding") is True


def test_missing_organization_resolves_to_free(store) -> None:
    snapshot = _resolve(store, "org_ghost")

    assert snapshot.organization_id == "org_ghost"
    assert snapshot.status == SubscriptionStatus.INACTIVE
    assert snapshot.has("ai.generate_content") is False


def test_capabilities_are_derived_from_plan_and_status(store) -> None:
    asyncio.run(store.set("organizations/org_1", {"ownerUid": "u1", "planId": "host_monthly"}))
    asyncio.run(
        store.set(
            "subscriptions/org_1",
            {
                "planId": "host_monthly",
                "status": "past_due",
                "provider": "stripe",
                "currentPeriodEnd": "2024-06-01T00:00:00+00:00",
                "cancelAtPeriodEnd": True,
            },
        )
    )

    snapshot = _resolve(store, "org_1")

    assert snapshot.entitled is True
    assert snapshot.source == EntitlementSource.DERIVED
    assert snapshot.has("billing.invoice_drafts") is True
    assert snapshot.provider == "stripe"
    assert snapshot.cancel_at_period_end is True
    assert snapshot.renewal_at.year == 2024


def test_stored_snapshot_overrides_derived_flags(store) -> None:
    asyncio.run(store.set("organizations/org_1", {"ownerUid": "u1"}))
    asyncio.run(store.set("subscriptions/org_1", {"planId": "host_monthly", "status": "active"}))
    asyncio.run(
        store.set(
            "entitlements/org_1",
            {"capabilities": {"api.apple_music": False, "laser.tag": True}, "source": "manual"},
        )
    )

    snapshot = _resolve(store, "org_1")

    assert snapshot.source == EntitlementSource.MANUAL
    assert snapshot.has("api.apple_music") is False
    assert snapshot.has("ai.generate_content") is True
    assert "laser.tag" not in snapshot.capabilities


def test_legacy_profile_flags_unlock_catalog_search(store) -> None:
    asyncio.run(store.set("organizations/org_1", {"ownerUid": "u1", "planId": "free"}))
    asyncio.run(store.set("users/u1", {"hostProLegacy": True}))

    snapshot = _resolve(store, "org_1")

    assert snapshot.plan_id == PlanKey.FREE
    assert snapshot.has("api.youtube_data") is True
    assert snapshot.has("api.apple_music") is True
    assert snapshot.has("ai.generate_content") is False


def test_billing_state_falls_back_to_organization_summary() -> None:
    plan, status = billing_state({"planId": "vip_monthly", "subscriptionStatus": "trialing"}, None)

    assert plan == PlanKey.VIP_MONTHLY
    assert status == SubscriptionStatus.TRIALING
    assert billing_state(None, None) == (PlanKey.FREE, SubscriptionStatus.INACTIVE)
