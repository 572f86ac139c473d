"""Service resolving an organization's capabilities from its billing state."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from ..errors import InvalidArgumentError
from ..store import DocumentStore, document_path
from ..store.collections import ENTITLEMENTS, ORGANIZATIONS, SUBSCRIPTIONS, USERS
from .catalog import apply_legacy_tier_flags, build_capabilities_for_plan, normalize_plan_id
from .models import CapabilitySet, EntitlementSnapshot, EntitlementSource, PlanKey, SubscriptionStatus

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _parse_source(value: Any) -> EntitlementSource:
    if isinstance(value, EntitlementSource):
        return value
    try:
        return EntitlementSource(str(value or ""))
    except ValueError:
        return EntitlementSource.DERIVED


def billing_state(
    organization: Optional[Mapping[str, Any]],
    subscription: Optional[Mapping[str, Any]],
) -> Tuple[PlanKey, SubscriptionStatus]:
    """Plan and status from the subscription record, falling back to the organization summary."""

    organization = organization or {}
    subscription = subscription or {}
    plan_id = normalize_plan_id(subscription.get("planId") or organization.get("planId"))
    status = SubscriptionStatus.parse(
        subscription.get("status") or organization.get("subscriptionStatus")
    )
    return plan_id, status


class EntitlementService:
    """Reads subscription, snapshot and owner profile documents to build entitlements.

    Resolution never fails because something is missing: an unknown
    organization resolves to the free plan with the base capability set.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def resolve_entitlements(self, organization_id: Optional[str]) -> EntitlementSnapshot:
        org_id = (organization_id or "").strip()
        if not org_id:
            return EntitlementSnapshot()
        try:
            organization_path = document_path(ORGANIZATIONS, org_id)
        except InvalidArgumentError:
            logger.debug("Ignoring malformed organization id %r", org_id)
            return EntitlementSnapshot()

        organization = await self._store.get(organization_path)
        if organization is None:
            return EntitlementSnapshot(organization_id=org_id)

        subscription = await self._store.get(document_path(SUBSCRIPTIONS, org_id)) or {}
        plan_id, status = billing_state(organization, subscription)

        capabilities = build_capabilities_for_plan(plan_id, status)
        source = EntitlementSource.DERIVED
        stored = await self._store.get(document_path(ENTITLEMENTS, org_id))
        if stored and isinstance(stored.get("capabilities"), Mapping):
            capabilities = CapabilitySet.from_flags(stored["capabilities"], fallback=capabilities)
            source = _parse_source(stored.get("source"))

        owner_id = str(organization.get("ownerUid") or "").strip()
        if owner_id:
            profile = await self._store.get(document_path(USERS, owner_id))
            capabilities = apply_legacy_tier_flags(capabilities, profile)

        return EntitlementSnapshot(
            organization_id=org_id,
            plan_id=plan_id,
            status=status,
            entitled=status.is_entitled,
            capabilities=capabilities.to_flags(),
            provider=subscription.get("provider") or organization.get("billingProvider"),
            renewal_at=_parse_timestamp(subscription.get("currentPeriodEnd")),
            cancel_at_period_end=bool(subscription.get("cancelAtPeriodEnd")),
            source=source,
        )


__all__ = ["EntitlementService", "billing_state"]
