"""Typed representations of organizations (billing tenants)."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..entitlements.models import PlanKey, SubscriptionStatus


class OrganizationStatus(str, Enum):
    """Lifecycle state for an organization."""

    ACTIVE = "active"


class Organization(BaseModel):
    """Persistent organization record owned by exactly one user."""

    id: str
    owner_id: str = Field(default="", alias="ownerUid", description="User with billing authority.")
    name: str = ""
    status: OrganizationStatus = OrganizationStatus.ACTIVE
    plan_id: PlanKey = Field(default=PlanKey.FREE, alias="planId")
    subscription_status: SubscriptionStatus = Field(
        default=SubscriptionStatus.INACTIVE,
        alias="subscriptionStatus",
    )
    billing_provider: Optional[str] = Field(default=None, alias="billingProvider")
    billing_updated_at: Optional[datetime] = Field(default=None, alias="billingUpdatedAt")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("plan_id", mode="before")
    @classmethod
    def _normalize_plan(cls, value: Any) -> PlanKey:
        return PlanKey.parse(value)

    @field_validator("subscription_status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> SubscriptionStatus:
        return SubscriptionStatus.parse(value)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_org_status(cls, value: Any) -> OrganizationStatus:
        if isinstance(value, OrganizationStatus):
            return value
        try:
            return OrganizationStatus(str(value or "active"))
        except ValueError:
            return OrganizationStatus.ACTIVE

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Organization":
        return cls.model_validate(dict(document))

    def to_document(self) -> dict:
        """Store mapping; datetimes are left for the store to format."""

        document = self.model_dump(by_alias=True)
        return {key: value.value if isinstance(value, Enum) else value for key, value in document.items()}
