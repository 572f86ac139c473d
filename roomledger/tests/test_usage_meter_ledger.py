from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.app.errors import (
    InvalidArgumentError,
    InvalidMeterError,
    LedgerUnavailableError,
    QuotaExhaustedError,
)
from roomledger.app.metering import UsageMeterLedger, period_key_for, usage_record_path, validate_period_key
from roomledger.app.store import InMemoryDocumentStore

MAY = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
METER = "ai_generate_content"


def _seed_org(store: InMemoryDocumentStore, plan: str = "host_monthly", status: str = "active") -> None:
    async def seed():
        await store.set(
            "organizations/org_1",
            {"id": "org_1", "ownerUid": "u1", "planId": plan, "subscriptionStatus": status},
        )
        await store.set("subscriptions/org_1", {"planId": plan, "status": status})

    asyncio.run(seed())


def _seed_usage(store: InMemoryDocumentStore, used: int) -> None:
    asyncio.run(
        store.set(
            usage_record_path("org_1", "202405"),
            {"meters": {METER: {"used": used}}},
        )
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore(max_attempts=64)
    _seed_org(store)
    return store


@pytest.fixture
def ledger(store: InMemoryDocumentStore) -> UsageMeterLedger:
    return UsageMeterLedger(store, clock=lambda: MAY)


def test_period_keys() -> None:
    assert period_key_for(MAY) == "202405"
    assert validate_period_key("202412") == "202412"
    for bad in ("2024-05", "202413", "202400", "abc", ""):
        with pytest.raises(InvalidArgumentError):
            validate_period_key(bad)


def test_reservation_increments_usage_and_stores_quota_snapshot(store, ledger) -> None:
    summary = asyncio.run(ledger.reserve_usage_units("org_1", METER, 3))

    assert summary.used == 3
    assert summary.included == 750
    assert summary.hard_limit == 2500
    assert summary.period == "202405"

    record = asyncio.run(store.get(usage_record_path("org_1", "202405")))
    snapshot = record["meters"][METER]
    assert snapshot["used"] == 3
    assert snapshot["billableUnitRateCents"] == 3
    assert snapshot["markupMultiplier"] == 1.5
    assert record["organizationId"] == "org_1"


def test_reservations_are_monotonic_and_keep_other_meters(store, ledger) -> None:
    asyncio.run(ledger.reserve_usage_units("org_1", METER, 2))
    asyncio.run(ledger.reserve_usage_units("org_1", "youtube_data_request", 5))
    asyncio.run(ledger.reserve_usage_units("org_1", METER, 1))

    record = asyncio.run(store.get(usage_record_path("org_1", "202405")))
    assert record["meters"][METER]["used"] == 3
    assert record["meters"]["youtube_data_request"]["used"] == 5


def test_invalid_requests_are_rejected_before_touching_the_store(store, ledger) -> None:
    commits = store.commit_count
    with pytest.raises(InvalidMeterError):
        asyncio.run(ledger.reserve_usage_units("org_1", "fax_pages", 1))
    with pytest.raises(InvalidArgumentError):
        asyncio.run(ledger.reserve_usage_units("org_1", METER, 0))
    with pytest.raises(InvalidArgumentError):
        asyncio.run(ledger.reserve_usage_units("org_1", METER, True))
    with pytest.raises(InvalidArgumentError):
        asyncio.run(ledger.reserve_usage_units("", METER, 1))
    assert store.commit_count == commits


def test_reservation_past_hard_limit_is_refused_without_writing(store, ledger) -> None:
    _seed_usage(store, 2499)

    with pytest.raises(QuotaExhaustedError) as exc:
        asyncio.run(ledger.reserve_usage_units("org_1", METER, 2))

    assert exc.value.code == "resource-exhausted"
    assert exc.value.payload["hard_limit"] == 2500
    assert exc.value.payload["used"] == 2499
    record = asyncio.run(store.get(usage_record_path("org_1", "202405")))
    assert record["meters"][METER]["used"] == 2499

    last = asyncio.run(ledger.reserve_usage_units("org_1", METER, 1))
    assert last.used == 2500
    assert last.hard_limit_reached is True


def test_concurrent_reservations_never_exceed_hard_limit(store, ledger) -> None:
    _seed_usage(store, 2495)

    async def scenario():
        return await asyncio.gather(
            *(ledger.reserve_usage_units("org_1", METER, 1) for _ in range(10)),
            return_exceptions=True,
        )

    results = asyncio.run(scenario())
    granted = [item for item in results if not isinstance(item, Exception)]
    refused = [item for item in results if isinstance(item, QuotaExhaustedError)]

    assert len(granted) == 5
    assert len(refused) == 5
    assert sorted(item.used for item in granted) == [2496, 2497, 2498, 2499, 2500]
    record = asyncio.run(store.get(usage_record_path("org_1", "202405")))
    assert record["meters"][METER]["used"] == 2500


def test_inactive_subscription_has_no_hard_limit_at_the_ledger() -> None:
    store = InMemoryDocumentStore()
    _seed_org(store, plan="host_monthly", status="canceled")
    ledger = UsageMeterLedger(store, clock=lambda: MAY)

    summary = asyncio.run(ledger.reserve_usage_units("org_1", METER, 10))

    assert summary.hard_limit == 0
    assert summary.estimated_overage_cents == 0


def test_usage_summary_lists_every_meter_with_overage(store, ledger) -> None:
    _seed_usage(store, 790)
    asyncio.run(ledger.reserve_usage_units("org_1", METER, 10))

    usage = asyncio.run(ledger.read_usage_summary("org_1", "202405"))

    assert [meter.meter_id for meter in usage.meters] == [
        "ai_generate_content",
        "youtube_data_request",
        "apple_music_request",
    ]
    ai = usage.meter(METER)
    assert ai.used == 800
    assert ai.overage_units == 50
    assert ai.estimated_overage_cents == 150
    assert usage.meter("apple_music_request").used == 0
    assert usage.meter("apple_music_request").included == 2000
    assert usage.total_estimated_overage_cents == 150


def test_usage_summary_prices_from_the_stored_snapshot(store, ledger) -> None:
    asyncio.run(ledger.reserve_usage_units("org_1", METER, 800))
    asyncio.run(store.set("subscriptions/org_1", {"planId": "host_annual", "status": "active"}))

    usage = asyncio.run(ledger.read_usage_summary("org_1", "202405"))

    assert usage.plan_id.value == "host_annual"
    assert usage.meter(METER).included == 750
    assert usage.meter(METER).billable_unit_rate_cents == 3
    assert usage.meter("youtube_data_request").included == 9000


def test_usage_summary_rejects_malformed_period(ledger) -> None:
    with pytest.raises(InvalidArgumentError):
        asyncio.run(ledger.read_usage_summary("org_1", "2024-05"))


def test_metered_call_bills_on_attempt(store, ledger) -> None:
    async def failing_call():
        raise ConnectionError("upstream down")

    with pytest.raises(LedgerUnavailableError) as exc:
        asyncio.run(ledger.meter_call("org_1", METER, failing_call, units=2))

    assert exc.value.payload["billed_units"] == 2
    record = asyncio.run(store.get(usage_record_path("org_1", "202405")))
    assert record["meters"][METER]["used"] == 2


def test_metered_call_is_not_invoked_when_quota_is_exhausted(store, ledger) -> None:
    _seed_usage(store, 2500)
    calls = []

    async def call():
        calls.append(1)
        return "ok"

    with pytest.raises(QuotaExhaustedError):
        asyncio.run(ledger.meter_call("org_1", METER, call))
    assert calls == []


def test_metered_call_returns_value_with_usage(ledger) -> None:
    async def call():
        return {"text": "hello"}

    result = asyncio.run(ledger.meter_call("org_1", METER, call))

    assert result.value == {"text": "hello"}
    assert result.usage.used == 1
