"""Value objects produced by the invoice draft compiler."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import BillingInterval, PlanKey, SubscriptionStatus


class InvoiceLineKind(str, Enum):
    BASE_PLAN = "base_plan"
    METER_OVERAGE = "meter_overage"


class InvoiceLine(BaseModel):
    kind: InvoiceLineKind
    description: str
    quantity: int = Field(ge=0)
    unit_amount_cents: int = Field(ge=0)
    amount_cents: int = Field(ge=0)
    meter_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class RateCardEntry(BaseModel):
    """Meter pricing captured at generation time."""

    meter_id: str
    label: str
    unit: str
    included: int
    hard_limit: int
    billable_unit_rate_cents: int
    pass_through_unit_cost_cents: int
    markup_multiplier: float

    model_config = ConfigDict(frozen=True)


class RateCard(BaseModel):
    plan_id: PlanKey
    plan_display_name: str
    plan_amount_cents: int
    billing_interval: BillingInterval
    meters: List[RateCardEntry] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class InvoiceDraft(BaseModel):
    """Billable draft; amounts are integer minor currency units."""

    draft_id: str
    organization_id: str
    organization_name: str
    period: str
    plan_id: PlanKey
    status: SubscriptionStatus
    currency: str
    lines: List[InvoiceLine] = Field(default_factory=list)
    subtotal_cents: int = 0
    tax_rate_percent: float = 0.0
    tax_cents: int = 0
    total_cents: int = 0
    rate_card: RateCard
    generated_at: datetime

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class InvoiceOptions:
    tax_rate_percent: float = 0.0
    currency: str = "USD"
    include_base_plan: bool = True
    generated_at: Optional[datetime] = None
    draft_id: Optional[str] = None


__all__ = [
    "InvoiceDraft",
    "InvoiceLine",
    "InvoiceLineKind",
    "InvoiceOptions",
    "RateCard",
    "RateCardEntry",
]
