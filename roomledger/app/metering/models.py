"""Result types returned by the usage meter ledger."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import MeterSummary, PlanKey, SubscriptionStatus

T = TypeVar("T")


class UsageSummary(BaseModel):
    """Snapshot of every catalog meter for one organization and period."""

    organization_id: str
    period: str
    plan_id: PlanKey = PlanKey.FREE
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    meters: List[MeterSummary] = Field(default_factory=list)
    total_estimated_overage_cents: int = 0

    model_config = ConfigDict(frozen=True)

    def meter(self, meter_id: str) -> Optional[MeterSummary]:
        for summary in self.meters:
            if summary.meter_id == meter_id:
                return summary
        return None


@dataclass(frozen=True)
class MeteredResult(Generic[T]):
    """Outcome of a downstream call made after a successful reservation."""

    usage: MeterSummary
    value: T


__all__ = ["MeteredResult", "UsageSummary"]
