"""Domain models for the billing system."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..awards.models import AwardResult
from ..entitlements.models import EntitlementSource, PlanKey, SubscriptionStatus


class CheckoutMode(str, Enum):
    """Checkout flavours the payment processor reports."""

    SUBSCRIPTION = "subscription"
    PAYMENT = "payment"


class RewardScope(str, Enum):
    """Who receives points from a purchased room boost."""

    BUYER = "buyer"
    ROOM = "room"


class BillingWebhookEventType(str, Enum):
    """Webhook event types that the application reacts to."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class BillingWebhookEvent(BaseModel):
    """Verified webhook event; ``payload`` is the event's data object."""

    event_id: str
    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def from_processor_event(cls, event: Dict[str, Any]) -> "BillingWebhookEvent":
        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        payload = data.get("object") if isinstance(data.get("object"), dict) else {}
        return cls(
            event_id=str(event.get("id") or ""),
            event_type=str(event.get("type") or ""),
            payload=payload,
        )


class SubscriptionStatePayload(BaseModel):
    """Authoritative latest state of one organization's subscription."""

    organization_id: Optional[str] = None
    owner_user_id: Optional[str] = None
    plan_id: str = PlanKey.FREE.value
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    provider: str = "stripe"
    external_customer_id: Optional[str] = None
    external_subscription_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    source: EntitlementSource = EntitlementSource.WEBHOOK

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> SubscriptionStatus:
        return SubscriptionStatus.parse(value)

    @field_validator("plan_id", mode="before")
    @classmethod
    def _plan_as_text(cls, value: Any) -> str:
        if isinstance(value, PlanKey):
            return value.value
        return str(value or "").strip()


class SubscriptionSyncResult(BaseModel):
    organization_id: str
    plan_id: PlanKey
    status: SubscriptionStatus
    entitled: bool
    capabilities: Dict[str, bool]

    model_config = ConfigDict(frozen=True)


class WebhookOutcome(BaseModel):
    """What handling a webhook event did; duplicates are outcomes, not errors."""

    event_id: str
    event_type: str
    handled: bool
    duplicate: bool = False
    organization_id: Optional[str] = None
    awards: Optional[AwardResult] = None

    model_config = ConfigDict(frozen=True)


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    ROOM_BOOST_APPLIED = "room_boost_applied"
    DUPLICATE_CHECKOUT = "duplicate_checkout"


class BillingAuditEvent(BaseModel):
    """Structured audit event for analytics and notifications."""

    event_type: BillingAuditEventType
    organization_id: Optional[str] = None
    subscription_id: Optional[str] = None
    actor_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutSession(BaseModel):
    """Return value of a checkout session creation request."""

    session_id: str
    checkout_url: str
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PortalSession(BaseModel):
    url: str
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingWebhookEvent",
    "BillingWebhookEventType",
    "CheckoutMode",
    "CheckoutSession",
    "PortalSession",
    "RewardScope",
    "SubscriptionStatePayload",
    "SubscriptionSyncResult",
    "WebhookOutcome",
]
