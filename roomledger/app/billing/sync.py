"""Applies processor-reported subscription state to organization documents."""
from __future__ import annotations

import logging
from typing import Any, Dict

from ..entitlements.catalog import build_capabilities_for_plan, get_plan_definition, normalize_plan_id
from ..entitlements.models import PlanTier
from ..errors import InvalidOrganizationError
from ..store import SERVER_TIMESTAMP, DocumentStore, document_path
from ..store.collections import (
    ENTITLEMENTS,
    ORGANIZATIONS,
    SUBSCRIPTION_INDEX,
    SUBSCRIPTIONS,
    USERS,
)
from .models import SubscriptionStatePayload, SubscriptionSyncResult

logger = logging.getLogger(__name__)


class SubscriptionSynchronizer:
    """Writes a subscription's latest state to every dependent document at once.

    Callback payloads are treated as the latest truth for their subscription
    and merged last-write-wins; events are never reordered by timestamp.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def resolve_organization_id(self, payload: SubscriptionStatePayload) -> str:
        organization_id = (payload.organization_id or "").strip()
        if organization_id:
            return organization_id
        subscription_id = (payload.external_subscription_id or "").strip()
        if subscription_id and "/" not in subscription_id:
            index = await self._store.get(document_path(SUBSCRIPTION_INDEX, subscription_id))
            organization_id = str((index or {}).get("organizationId") or "").strip()
            if organization_id:
                return organization_id
        raise InvalidOrganizationError(
            "Subscription event could not be matched to an organization.",
            detail={"subscription_id": subscription_id or None},
        )

    async def apply_subscription_state(self, payload: SubscriptionStatePayload) -> SubscriptionSyncResult:
        organization_id = await self.resolve_organization_id(payload)
        plan_id = normalize_plan_id(payload.plan_id)
        if payload.plan_id and plan_id.value != payload.plan_id:
            logger.warning(
                "Unknown plan %r for organization %s; treating as %s",
                payload.plan_id,
                organization_id,
                plan_id.value,
            )
        status = payload.status
        entitled = status.is_entitled
        capabilities = build_capabilities_for_plan(plan_id, status).to_flags()

        owner_id = (payload.owner_user_id or "").strip()
        if not owner_id:
            organization = await self._store.get(document_path(ORGANIZATIONS, organization_id)) or {}
            owner_id = str(organization.get("ownerUid") or "").strip()

        organization_update: Dict[str, Any] = {
            "planId": plan_id.value,
            "subscriptionStatus": status.value,
            "billingProvider": payload.provider,
            "billingUpdatedAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        if owner_id:
            organization_update["ownerUid"] = owner_id

        batch = self._store.batch()
        batch.set(document_path(ORGANIZATIONS, organization_id), organization_update, merge=True)
        batch.set(
            document_path(SUBSCRIPTIONS, organization_id),
            {
                "organizationId": organization_id,
                "ownerUid": owner_id or None,
                "planId": plan_id.value,
                "status": status.value,
                "provider": payload.provider,
                "externalCustomerId": payload.external_customer_id,
                "externalSubscriptionId": payload.external_subscription_id,
                "currentPeriodEnd": payload.current_period_end,
                "cancelAtPeriodEnd": payload.cancel_at_period_end,
                "source": payload.source.value,
                "updatedAt": SERVER_TIMESTAMP,
            },
            merge=True,
        )
        batch.set(
            document_path(ENTITLEMENTS, organization_id),
            {
                "organizationId": organization_id,
                "planId": plan_id.value,
                "status": status.value,
                "entitled": entitled,
                "capabilities": capabilities,
                "source": payload.source.value,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        if owner_id:
            batch.set(document_path(USERS, owner_id), _legacy_profile_fields(plan_id.value, status.value, entitled), merge=True)
        if payload.external_subscription_id:
            batch.set(
                document_path(SUBSCRIPTION_INDEX, payload.external_subscription_id),
                {"organizationId": organization_id, "updatedAt": SERVER_TIMESTAMP},
            )
        await batch.commit()

        logger.info(
            "Applied subscription state org=%s plan=%s status=%s source=%s",
            organization_id,
            plan_id.value,
            status.value,
            payload.source.value,
        )
        return SubscriptionSyncResult(
            organization_id=organization_id,
            plan_id=plan_id,
            status=status,
            entitled=entitled,
            capabilities=capabilities,
        )


def _legacy_profile_fields(plan_id: str, status: str, entitled: bool) -> Dict[str, Any]:
    plan = get_plan_definition(plan_id)
    is_vip = bool(entitled and plan is not None and plan.tier == PlanTier.VIP)
    return {
        "subscriptionPlanId": plan_id,
        "subscriptionStatus": status,
        "vipLevel": 1 if is_vip else 0,
        "subscriptionUpdatedAt": SERVER_TIMESTAMP,
    }


__all__ = ["SubscriptionSynchronizer"]
