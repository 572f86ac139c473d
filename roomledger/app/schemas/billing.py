"""API schemas for billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import CheckoutSession, PortalSession, RewardScope, WebhookOutcome
from ..entitlements.models import SubscriptionStatus


class CheckoutSessionRequest(BaseModel):
    plan_id: str = Field(alias="planId", min_length=1)
    success_url: Optional[str] = Field(alias="successUrl", default=None)
    cancel_url: Optional[str] = Field(alias="cancelUrl", default=None)

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    checkout_url: str = Field(alias="checkoutUrl")
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, session: CheckoutSession) -> "CheckoutSessionResponse":
        return cls(
            session_id=session.session_id,
            checkout_url=session.checkout_url,
            expires_at=session.expires_at,
        )


class RoomBoostCheckoutRequest(BaseModel):
    points: int = Field(ge=1, le=5000)
    amount_cents: int = Field(alias="amountCents", ge=50)
    reward_scope: RewardScope = Field(alias="rewardScope", default=RewardScope.ROOM)
    award_badge: bool = Field(alias="awardBadge", default=False)
    label: str = Field(default="Room Boost", max_length=80)

    model_config = ConfigDict(populate_by_name=True)


class PortalSessionRequest(BaseModel):
    return_url: Optional[str] = Field(alias="returnUrl", default=None)

    model_config = ConfigDict(populate_by_name=True)


class PortalSessionResponse(BaseModel):
    url: str
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_portal(cls, session: PortalSession) -> "PortalSessionResponse":
        return cls(url=session.url, expires_at=session.expires_at)


class WebhookResponse(BaseModel):
    received: bool = True
    handled: bool = False
    duplicate: bool = False

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_outcome(cls, outcome: WebhookOutcome) -> "WebhookResponse":
        return cls(handled=outcome.handled, duplicate=outcome.duplicate)


class InvoicePreviewRequest(BaseModel):
    """Hypothetical usage to price without touching stored state."""

    organization_id: str = Field(alias="organizationId", default="preview")
    organization_name: str = Field(alias="organizationName", default="Preview")
    plan_id: str = Field(alias="planId", default="free")
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    period: Optional[str] = None
    usage: Dict[str, int] = Field(default_factory=dict)
    tax_rate_percent: Optional[float] = Field(alias="taxRatePercent", default=None, ge=0)
    currency: Optional[str] = None
    include_base_plan: bool = Field(alias="includeBasePlan", default=True)

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "CheckoutSessionRequest",
    "CheckoutSessionResponse",
    "InvoicePreviewRequest",
    "PortalSessionRequest",
    "PortalSessionResponse",
    "RoomBoostCheckoutRequest",
    "WebhookResponse",
]
