"""Domain models for entitlements and plan computation."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class PlanKey(str, Enum):
    """Canonical identifiers for subscription plans."""

    FREE = "free"
    VIP_MONTHLY = "vip_monthly"
    HOST_MONTHLY = "host_monthly"
    HOST_ANNUAL = "host_annual"

    @classmethod
    def parse(cls, value: object) -> "PlanKey":
        """Resolve a plan id defensively; unknown or blank ids become ``free``."""

        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip()
        try:
            return cls(normalized)
        except ValueError:
            return cls.FREE


class PlanTier(str, Enum):
    FREE = "free"
    VIP = "vip"
    HOST = "host"


class BillingInterval(str, Enum):
    """Supported billing frequencies."""

    NONE = "none"
    MONTH = "month"
    YEAR = "year"


class SubscriptionStatus(str, Enum):
    """Lifecycle state for subscriptions as reported by the payment processor."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"
    INACTIVE = "inactive"

    @classmethod
    def parse(cls, value: object) -> "SubscriptionStatus":
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            return cls.INACTIVE

    @property
    def is_entitled(self) -> bool:
        return self in ENTITLED_STATUSES


ENTITLED_STATUSES = frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING, SubscriptionStatus.PAST_DUE}
)


class Capability(str, Enum):
    """Capability flags an organization can hold."""

    AI_GENERATE_CONTENT = "ai.generate_content"
    API_YOUTUBE_DATA = "api.youtube_data"
    API_APPLE_MUSIC = "api.apple_music"
    BILLING_INVOICE_DRAFTS = "billing.invoice_drafts"
    WORKSPACE_ONBOARDING = "workspace.onboarding"


class EntitlementSource(str, Enum):
    """Where an entitlement snapshot came from."""

    DEFAULT = "default"
    DERIVED = "derived"
    CHECKOUT = "checkout"
    WEBHOOK = "webhook"
    MANUAL = "manual"


@dataclass(frozen=True)
class CapabilitySet:
    """Represents a complete, normalized set of capability flags."""

    ai_generate_content: bool = False
    api_youtube_data: bool = False
    api_apple_music: bool = False
    billing_invoice_drafts: bool = False
    workspace_onboarding: bool = True

    @staticmethod
    def _attribute_for(key: str) -> Optional[str]:
        try:
            return Capability(key).name.lower()
        except ValueError:
            return None

    @classmethod
    def from_flags(cls, flags: Mapping[str, object], *, fallback: Optional["CapabilitySet"] = None) -> "CapabilitySet":
        """Build a set from flattened flags, ignoring keys outside the base set."""

        base = fallback or cls()
        updates: Dict[str, bool] = {}
        for key, value in flags.items():
            attribute = cls._attribute_for(str(key))
            if attribute is None:
                continue
            updates[attribute] = bool(value)
        return replace(base, **updates)

    def merge(self, overrides: Mapping[str, bool]) -> "CapabilitySet":
        """Apply plan overrides, later values winning."""

        return CapabilitySet.from_flags(overrides, fallback=self)

    def enable(self, keys: Iterable[Capability]) -> "CapabilitySet":
        """Return a copy with the given capabilities switched on; never switches any off."""

        return replace(self, **{Capability(key).name.lower(): True for key in keys})

    def to_flags(self) -> Dict[str, bool]:
        """Serialize the set to flattened flag keys."""

        return {Capability[field.name.upper()].value: getattr(self, field.name) for field in fields(self)}


class EntitlementSnapshot(BaseModel):
    """Resolved entitlements for an organization, safe to render in any state."""

    organization_id: Optional[str] = None
    plan_id: PlanKey = PlanKey.FREE
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    entitled: bool = False
    capabilities: Dict[str, bool] = Field(default_factory=lambda: CapabilitySet().to_flags())
    provider: Optional[str] = None
    renewal_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    source: EntitlementSource = EntitlementSource.DEFAULT

    model_config = ConfigDict(frozen=True)

    def has(self, capability: str) -> bool:
        return bool(self.capabilities.get(capability))


class MeterSummary(BaseModel):
    """Usage of one meter in one period, with the quota snapshot it was priced at."""

    meter_id: str
    label: str
    unit: str
    period: str
    used: int = 0
    included: int = 0
    overage_units: int = 0
    overage_rate_cents: int = 0
    pass_through_unit_cost_cents: int = 0
    markup_multiplier: float = 1.0
    billable_unit_rate_cents: int = 0
    estimated_overage_cents: int = 0
    hard_limit: int = 0
    hard_limit_reached: bool = False
    remaining_included: int = 0
    remaining_to_hard_limit: Optional[int] = None

    model_config = ConfigDict(frozen=True)
