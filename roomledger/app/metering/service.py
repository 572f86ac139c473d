"""Per-organization, per-period usage counters with hard-limit enforcement."""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from ..entitlements.catalog import (
    USAGE_METER_CATALOG,
    MeterQuota,
    build_usage_meter_summary,
    get_meter_definition,
    resolve_usage_meter_quota,
    to_whole_number,
)
from ..entitlements.models import MeterSummary
from ..entitlements.service import billing_state
from ..errors import (
    InvalidArgumentError,
    InvalidMeterError,
    LedgerError,
    LedgerUnavailableError,
    QuotaExhaustedError,
)
from ..store import SERVER_TIMESTAMP, DocumentStore, Transaction, document_path
from ..store.collections import ORGANIZATIONS, SUBSCRIPTIONS, USAGE_PERIODS
from .models import MeteredResult, UsageSummary

T = TypeVar("T")

logger = logging.getLogger(__name__)

PERIOD_KEY_PATTERN = re.compile(r"^\d{6}$")


def period_key_for(moment: Optional[datetime] = None) -> str:
    """Return the ``YYYYMM`` accounting period containing ``moment`` (UTC)."""

    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return f"{moment.year:04d}{moment.month:02d}"


def validate_period_key(period_key: str) -> str:
    normalized = str(period_key or "").strip()
    if not PERIOD_KEY_PATTERN.match(normalized):
        raise InvalidArgumentError(
            "period_key must be formatted as YYYYMM.",
            detail={"period_key": normalized},
        )
    month = int(normalized[4:])
    if not 1 <= month <= 12:
        raise InvalidArgumentError(
            "period_key month must be between 01 and 12.",
            detail={"period_key": normalized},
        )
    return normalized


def usage_record_path(organization_id: str, period_key: str) -> str:
    return document_path(USAGE_PERIODS, f"{organization_id}_{period_key}")


def _require_organization_id(organization_id: str) -> str:
    normalized = str(organization_id or "").strip()
    if not normalized or "/" in normalized:
        raise InvalidArgumentError("organization_id is required.")
    return normalized


def _quota_from_snapshot(meter_id: str, snapshot: Mapping[str, Any]) -> MeterQuota:
    overage_rate = to_whole_number(snapshot.get("overageRateCents"))
    try:
        markup = float(snapshot.get("markupMultiplier", 1))
    except (TypeError, ValueError):
        markup = 1.0
    return MeterQuota(
        meter_id=meter_id,
        included=to_whole_number(snapshot.get("included")),
        hard_limit=to_whole_number(snapshot.get("hardLimit")),
        overage_rate_cents=overage_rate,
        pass_through_unit_cost_cents=to_whole_number(snapshot.get("passThroughUnitCostCents")),
        markup_multiplier=markup,
        billable_unit_rate_cents=to_whole_number(snapshot.get("billableUnitRateCents"), overage_rate),
    )


def _meter_snapshot(used: int, quota: MeterQuota) -> Dict[str, Any]:
    return {
        "used": used,
        "included": quota.included,
        "hardLimit": quota.hard_limit,
        "overageRateCents": quota.overage_rate_cents,
        "passThroughUnitCostCents": quota.pass_through_unit_cost_cents,
        "markupMultiplier": quota.markup_multiplier,
        "billableUnitRateCents": quota.billable_unit_rate_cents,
        "updatedAt": SERVER_TIMESTAMP,
    }


class UsageMeterLedger:
    """Reserves metered units atomically against the organization's quota.

    Each reservation is a single read-modify-write transaction on the
    organization's period record, so concurrent callers can never push a
    meter past its hard limit. Units are billed when reserved; a later
    downstream failure does not refund them.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def reserve_usage_units(
        self,
        organization_id: str,
        meter_id: str,
        units: int = 1,
        *,
        now: Optional[datetime] = None,
    ) -> MeterSummary:
        org_id = _require_organization_id(organization_id)
        meter = get_meter_definition(meter_id)
        if meter is None:
            raise InvalidMeterError(f"Unknown usage meter '{meter_id}'.", detail={"meter_id": meter_id})
        if isinstance(units, bool) or not isinstance(units, int) or units < 1:
            raise InvalidArgumentError("units must be a positive integer.", detail={"units": units})

        period_key = period_key_for(now or self._clock())
        record_path = usage_record_path(org_id, period_key)

        async def _reserve(transaction: Transaction) -> MeterSummary:
            organization = await transaction.get(document_path(ORGANIZATIONS, org_id))
            subscription = await transaction.get(document_path(SUBSCRIPTIONS, org_id))
            record = await transaction.get(record_path) or {}

            plan_id, status = billing_state(organization, subscription)
            quota = resolve_usage_meter_quota(meter.id, plan_id, status)
            meters = record.get("meters") if isinstance(record.get("meters"), Mapping) else {}
            used = to_whole_number((meters.get(meter.id) or {}).get("used"))
            planned_used = used + units

            if quota.hard_limit > 0 and planned_used > quota.hard_limit:
                raise QuotaExhaustedError(
                    meter_id=meter.id,
                    used=used,
                    requested=units,
                    hard_limit=quota.hard_limit,
                    period_key=period_key,
                )

            transaction.set(
                record_path,
                {
                    "organizationId": org_id,
                    "period": period_key,
                    "meters": {meter.id: _meter_snapshot(planned_used, quota)},
                    "updatedAt": SERVER_TIMESTAMP,
                },
                merge=True,
            )
            return build_usage_meter_summary(meter.id, planned_used, quota, period_key)

        try:
            summary = await self._store.run_transaction(_reserve)
        except QuotaExhaustedError as exc:
            logger.info(
                "Quota exhausted for org=%s meter=%s period=%s (used=%s, limit=%s)",
                org_id,
                exc.meter_id,
                exc.period_key,
                exc.used,
                exc.hard_limit,
            )
            raise
        logger.debug("Reserved %s %s unit(s) for org=%s (used=%s)", units, meter.id, org_id, summary.used)
        return summary

    async def read_usage_summary(self, organization_id: str, period_key: str) -> UsageSummary:
        """Return every catalog meter for the period, zero-usage meters included.

        Meters that were reserved in the period are priced from the quota
        snapshot stored with them; the others use the current plan.
        """

        org_id = _require_organization_id(organization_id)
        period = validate_period_key(period_key)

        organization = await self._store.get(document_path(ORGANIZATIONS, org_id))
        subscription = await self._store.get(document_path(SUBSCRIPTIONS, org_id))
        record = await self._store.get(usage_record_path(org_id, period)) or {}
        plan_id, status = billing_state(organization, subscription)
        stored_meters = record.get("meters") if isinstance(record.get("meters"), Mapping) else {}

        summaries = []
        for meter_id in USAGE_METER_CATALOG:
            snapshot = stored_meters.get(meter_id)
            if isinstance(snapshot, Mapping):
                quota = _quota_from_snapshot(meter_id, snapshot)
                used = snapshot.get("used", 0)
            else:
                quota = resolve_usage_meter_quota(meter_id, plan_id, status)
                used = 0
            summaries.append(build_usage_meter_summary(meter_id, used, quota, period))

        return UsageSummary(
            organization_id=org_id,
            period=period,
            plan_id=plan_id,
            status=status,
            meters=summaries,
            total_estimated_overage_cents=sum(item.estimated_overage_cents for item in summaries),
        )

    async def meter_call(
        self,
        organization_id: str,
        meter_id: str,
        call: Callable[[], Awaitable[T]],
        *,
        units: int = 1,
    ) -> MeteredResult[T]:
        """Reserve usage, then invoke ``call``.

        The reservation stands even when ``call`` fails.
        """

        usage = await self.reserve_usage_units(organization_id, meter_id, units)
        try:
            value = await call()
        except LedgerError:
            raise
        except Exception as exc:
            logger.warning(
                "Metered call failed for org=%s meter=%s after reservation: %s",
                organization_id,
                meter_id,
                exc,
            )
            raise LedgerUnavailableError(
                "The metered service is unavailable.",
                detail={"meter_id": meter_id, "billed_units": units},
            ) from exc
        return MeteredResult(usage=usage, value=value)


__all__ = [
    "PERIOD_KEY_PATTERN",
    "UsageMeterLedger",
    "period_key_for",
    "usage_record_path",
    "validate_period_key",
]
