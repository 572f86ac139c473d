"""Pure compilation of invoice drafts from usage and entitlements."""
from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Mapping, Optional

from ..entitlements.catalog import (
    PLAN_CATALOG,
    USAGE_METER_CATALOG,
    build_usage_meter_summary,
    get_plan_definition,
    resolve_usage_meter_quota,
)
from ..entitlements.models import EntitlementSnapshot, PlanKey, SubscriptionStatus
from ..metering.models import UsageSummary
from ..organizations.models import Organization
from .models import (
    InvoiceDraft,
    InvoiceLine,
    InvoiceLineKind,
    InvoiceOptions,
    RateCard,
    RateCardEntry,
)


def compute_tax_cents(subtotal_cents: int, tax_rate_percent: float) -> int:
    """Tax on an integer subtotal, rounded half-up to whole cents."""

    if subtotal_cents <= 0 or not math.isfinite(tax_rate_percent) or tax_rate_percent <= 0:
        return 0
    raw = Decimal(subtotal_cents) * Decimal(str(tax_rate_percent)) / Decimal(100)
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def period_start(period_key: str) -> datetime:
    return datetime(int(period_key[:4]), int(period_key[4:]), 1, tzinfo=timezone.utc)


def build_invoice_draft(
    organization: Organization,
    entitlements: EntitlementSnapshot,
    usage_summary: UsageSummary,
    options: Optional[InvoiceOptions] = None,
) -> InvoiceDraft:
    """Turn a usage snapshot into a billable draft.

    The draft embeds the rate card it was priced with, and identical inputs
    always produce an identical draft.
    """

    options = options or InvoiceOptions()
    plan = get_plan_definition(entitlements.plan_id) or PLAN_CATALOG[PlanKey.FREE]
    lines: List[InvoiceLine] = []

    if options.include_base_plan and entitlements.entitled and plan.amount_cents > 0:
        lines.append(
            InvoiceLine(
                kind=InvoiceLineKind.BASE_PLAN,
                description=f"{plan.display_name} plan ({plan.interval.value})",
                quantity=1,
                unit_amount_cents=plan.amount_cents,
                amount_cents=plan.amount_cents,
            )
        )

    rate_entries: List[RateCardEntry] = []
    for meter in usage_summary.meters:
        rate_entries.append(
            RateCardEntry(
                meter_id=meter.meter_id,
                label=meter.label,
                unit=meter.unit,
                included=meter.included,
                hard_limit=meter.hard_limit,
                billable_unit_rate_cents=meter.billable_unit_rate_cents,
                pass_through_unit_cost_cents=meter.pass_through_unit_cost_cents,
                markup_multiplier=meter.markup_multiplier,
            )
        )
        if meter.estimated_overage_cents <= 0:
            continue
        lines.append(
            InvoiceLine(
                kind=InvoiceLineKind.METER_OVERAGE,
                description=f"{meter.label} overage ({meter.overage_units} {meter.unit})",
                quantity=meter.overage_units,
                unit_amount_cents=meter.billable_unit_rate_cents,
                amount_cents=meter.estimated_overage_cents,
                meter_id=meter.meter_id,
            )
        )

    subtotal = sum(line.amount_cents for line in lines)
    tax_rate = max(float(options.tax_rate_percent or 0.0), 0.0)
    tax = compute_tax_cents(subtotal, tax_rate)

    return InvoiceDraft(
        draft_id=options.draft_id or f"draft_{organization.id}_{usage_summary.period}",
        organization_id=organization.id,
        organization_name=organization.name,
        period=usage_summary.period,
        plan_id=plan.key,
        status=entitlements.status,
        currency=(options.currency or "USD").upper(),
        lines=lines,
        subtotal_cents=subtotal,
        tax_rate_percent=tax_rate,
        tax_cents=tax,
        total_cents=subtotal + tax,
        rate_card=RateCard(
            plan_id=plan.key,
            plan_display_name=plan.display_name,
            plan_amount_cents=plan.amount_cents,
            billing_interval=plan.interval,
            meters=rate_entries,
        ),
        generated_at=options.generated_at or period_start(usage_summary.period),
    )


def summarize_usage_counts(
    organization_id: str,
    period_key: str,
    plan_id: PlanKey,
    status: SubscriptionStatus,
    usage: Mapping[str, int],
) -> UsageSummary:
    """Price raw per-meter counts with the current catalog."""

    meters = []
    for meter_id in USAGE_METER_CATALOG:
        quota = resolve_usage_meter_quota(meter_id, plan_id, status)
        meters.append(build_usage_meter_summary(meter_id, usage.get(meter_id, 0), quota, period_key))
    return UsageSummary(
        organization_id=organization_id,
        period=period_key,
        plan_id=plan_id,
        status=status,
        meters=meters,
        total_estimated_overage_cents=sum(item.estimated_overage_cents for item in meters),
    )


__all__ = ["build_invoice_draft", "compute_tax_cents", "period_start", "summarize_usage_counts"]
