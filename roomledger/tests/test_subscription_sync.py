from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.app.billing import SubscriptionStatePayload, SubscriptionSynchronizer
from roomledger.app.entitlements import EntitlementService, PlanKey, SubscriptionStatus
from roomledger.app.errors import InvalidOrganizationError
from roomledger.app.store import InMemoryDocumentStore


@pytest.fixture
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    asyncio.run(
        store.set(
            "organizations/org_u1",
            {"id": "org_u1", "ownerUid": "u1", "name": "Studio", "planId": "free"},
        )
    )
    return store


def test_applies_state_to_every_document(store: InMemoryDocumentStore) -> None:
    synchronizer = SubscriptionSynchronizer(store)
    period_end = datetime(2024, 6, 1, tzinfo=timezone.utc)

    result = asyncio.run(
        synchronizer.apply_subscription_state(
            SubscriptionStatePayload(
                organization_id="org_u1",
                plan_id="host_monthly",
                status="active",
                external_customer_id="cus_1",
                external_subscription_id="sub_1",
                current_period_end=period_end,
            )
        )
    )

    assert result.entitled is True
    assert result.capabilities["billing.invoice_drafts"] is True

    documents = store.dump()
    organization = documents["organizations/org_u1"]
    assert organization["planId"] == "host_monthly"
    assert organization["subscriptionStatus"] == "active"
    assert organization["name"] == "Studio"
    assert documents["subscriptions/org_u1"]["externalCustomerId"] == "cus_1"
    assert documents["subscriptions/org_u1"]["ownerUid"] == "u1"
    assert documents["entitlements/org_u1"]["source"] == "webhook"
    assert documents["subscription_index/sub_1"]["organizationId"] == "org_u1"
    assert documents["users/u1"]["subscriptionPlanId"] == "host_monthly"
    assert documents["users/u1"]["vipLevel"] == 0

    snapshot = asyncio.run(EntitlementService(store).resolve_entitlements("org_u1"))
    assert snapshot.renewal_at == period_end
    assert snapshot.has("ai.generate_content")


def test_unknown_plan_is_stored_as_free(store: InMemoryDocumentStore) -> None:
    result = asyncio.run(
        SubscriptionSynchronizer(store).apply_subscription_state(
            SubscriptionStatePayload(organization_id="org_u1", plan_id="gold_tier", status="active")
        )
    )

    assert result.plan_id == PlanKey.FREE
    assert store.dump()["organizations/org_u1"]["planId"] == "free"


def test_vip_plan_sets_legacy_vip_level(store: InMemoryDocumentStore) -> None:
    asyncio.run(
        SubscriptionSynchronizer(store).apply_subscription_state(
            SubscriptionStatePayload(organization_id="org_u1", plan_id="vip_monthly", status="trialing")
        )
    )

    assert store.dump()["users/u1"]["vipLevel"] == 1


def test_enum_payload_values_apply_like_text(store: InMemoryDocumentStore) -> None:
    result = asyncio.run(
        SubscriptionSynchronizer(store).apply_subscription_state(
            SubscriptionStatePayload(
                organization_id="org_u1",
                plan_id=PlanKey.HOST_ANNUAL,
                status=SubscriptionStatus.ACTIVE,
            )
        )
    )

    documents = store.dump()
    assert result.plan_id == PlanKey.HOST_ANNUAL
    assert documents["subscriptions/org_u1"]["planId"] == "host_annual"
    assert documents["entitlements/org_u1"]["capabilities"]["ai.generate_content"] is True


def test_reverse_index_resolves_events_without_organization(store: InMemoryDocumentStore) -> None:
    synchronizer = SubscriptionSynchronizer(store)
    asyncio.run(
        synchronizer.apply_subscription_state(
            SubscriptionStatePayload(
                organization_id="org_u1",
                plan_id="host_monthly",
                status="active",
                external_subscription_id="sub_9",
            )
        )
    )

    result = asyncio.run(
        synchronizer.apply_subscription_state(
            SubscriptionStatePayload(plan_id="host_monthly", status="canceled", external_subscription_id="sub_9")
        )
    )

    assert result.organization_id == "org_u1"
    assert result.status == SubscriptionStatus.CANCELED
    assert result.capabilities["ai.generate_content"] is False


def test_unresolvable_event_is_invalid_organization(store: InMemoryDocumentStore) -> None:
    with pytest.raises(InvalidOrganizationError):
        asyncio.run(
            SubscriptionSynchronizer(store).apply_subscription_state(
                SubscriptionStatePayload(plan_id="host_monthly", status="active", external_subscription_id="sub_x")
            )
        )
