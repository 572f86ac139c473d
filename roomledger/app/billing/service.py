"""Core service coordinating billing flows with external providers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

from ..awards import AwardLedger, AwardResult, AwardSource, MAX_RECIPIENTS_PER_CALL, RoomDirectory
from ..entitlements.catalog import get_plan_definition
from ..entitlements.models import EntitlementSource, PlanKey, SubscriptionStatus
from ..errors import DataLossError, FailedPreconditionError, InvalidArgumentError
from ..store import SERVER_TIMESTAMP, DocumentStore, document_path
from ..store.collections import CHECKOUT_EVENTS, SUBSCRIPTIONS
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    BillingWebhookEvent,
    BillingWebhookEventType,
    CheckoutMode,
    CheckoutSession,
    PortalSession,
    RewardScope,
    SubscriptionStatePayload,
    WebhookOutcome,
)
from .sync import SubscriptionSynchronizer

logger = logging.getLogger(__name__)

_SUBSCRIPTION_EVENTS = {
    BillingWebhookEventType.SUBSCRIPTION_CREATED.value,
    BillingWebhookEventType.SUBSCRIPTION_UPDATED.value,
    BillingWebhookEventType.SUBSCRIPTION_DELETED.value,
}


class PaymentProvider(Protocol):
    """External payment processor integration."""

    def create_checkout_session(
        self,
        *,
        mode: CheckoutMode,
        plan_key: Optional[PlanKey],
        amount_cents: Optional[int],
        label: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, object]:
        """Create a provider checkout session."""

    def create_billing_portal_session(self, *, customer_id: str, return_url: str) -> Dict[str, object]:
        """Create a provider managed billing portal session."""


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


@dataclass
class BillingService:
    """Coordinates checkout, portal sessions and verified webhook events."""

    store: DocumentStore
    synchronizer: SubscriptionSynchronizer
    award_ledger: AwardLedger
    rooms: RoomDirectory
    provider: PaymentProvider
    event_logger: BillingEventLogger
    app_base_url: str = "http://localhost:5173"

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def create_checkout_session(
        self,
        *,
        organization_id: str,
        owner_user_id: str,
        plan_key: PlanKey,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> CheckoutSession:
        plan = get_plan_definition(plan_key)
        if plan is None or plan.amount_cents <= 0:
            raise InvalidArgumentError(
                "Choose a paid plan to start checkout.",
                detail={"plan_id": str(getattr(plan_key, "value", plan_key))},
            )

        session = self.provider.create_checkout_session(
            mode=CheckoutMode.SUBSCRIPTION,
            plan_key=plan.key,
            amount_cents=plan.amount_cents,
            label=plan.display_name,
            metadata={
                "organizationId": organization_id,
                "ownerUserId": owner_user_id,
                "planId": plan.key.value,
            },
            success_url=success_url or f"{self.app_base_url}/billing?checkout=success",
            cancel_url=cancel_url or f"{self.app_base_url}/billing?checkout=cancel",
        )
        return CheckoutSession(
            session_id=str(session.get("id") or ""),
            checkout_url=str(session.get("url") or ""),
            expires_at=session.get("expires_at"),
        )

    def create_room_boost_checkout(
        self,
        *,
        room_code: str,
        buyer_id: str,
        buyer_name: str,
        points: int,
        amount_cents: int,
        reward_scope: RewardScope = RewardScope.ROOM,
        award_badge: bool = False,
        label: str = "Room Boost",
    ) -> CheckoutSession:
        if points <= 0 or amount_cents <= 0:
            raise InvalidArgumentError("Invalid points pack.", detail={"points": points, "amount_cents": amount_cents})

        session = self.provider.create_checkout_session(
            mode=CheckoutMode.PAYMENT,
            plan_key=None,
            amount_cents=amount_cents,
            label=label,
            metadata={
                "roomCode": room_code,
                "points": str(points),
                "rewardScope": reward_scope.value,
                "awardBadge": "1" if award_badge else "0",
                "buyerUid": buyer_id,
                "buyerName": buyer_name or "Guest",
                "label": label,
            },
            success_url=f"{self.app_base_url}/?room={room_code}&points=success",
            cancel_url=f"{self.app_base_url}/?room={room_code}&points=cancel",
        )
        return CheckoutSession(
            session_id=str(session.get("id") or ""),
            checkout_url=str(session.get("url") or ""),
            expires_at=session.get("expires_at"),
        )

    async def create_portal_session(self, *, organization_id: str, return_url: Optional[str] = None) -> PortalSession:
        subscription = await self.store.get(document_path(SUBSCRIPTIONS, organization_id)) or {}
        customer_id = str(subscription.get("externalCustomerId") or "").strip()
        if not customer_id:
            raise FailedPreconditionError(
                "No billing profile exists for this organization yet.",
                detail={"organization_id": organization_id},
            )
        session = self.provider.create_billing_portal_session(
            customer_id=customer_id,
            return_url=return_url or f"{self.app_base_url}/billing",
        )
        return PortalSession(url=str(session.get("url") or ""), expires_at=session.get("expires_at"))

    async def handle_webhook(self, event: BillingWebhookEvent) -> WebhookOutcome:
        """Apply a verified processor event; safe to call again for redeliveries."""

        if event.event_type == BillingWebhookEventType.CHECKOUT_SESSION_COMPLETED.value:
            mode = str(event.payload.get("mode") or "")
            if mode == CheckoutMode.SUBSCRIPTION.value:
                return await self._handle_subscription_checkout(event)
            if _metadata(event.payload).get("roomCode"):
                return await self._handle_room_boost(event)
        elif event.event_type in _SUBSCRIPTION_EVENTS:
            return await self._handle_subscription_event(event)

        logger.debug("Ignoring webhook %s of type %s", event.event_id, event.event_type)
        return WebhookOutcome(event_id=event.event_id, event_type=event.event_type, handled=False)

    async def _handle_subscription_checkout(self, event: BillingWebhookEvent) -> WebhookOutcome:
        session = event.payload
        metadata = _metadata(session)
        payload = SubscriptionStatePayload(
            organization_id=metadata.get("organizationId"),
            owner_user_id=metadata.get("ownerUserId"),
            plan_id=metadata.get("planId") or "",
            status=SubscriptionStatus.ACTIVE,
            external_customer_id=_string_or_none(session.get("customer")),
            external_subscription_id=_string_or_none(session.get("subscription")),
            source=EntitlementSource.CHECKOUT,
        )
        result = await self.synchronizer.apply_subscription_state(payload)
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.SUBSCRIPTION_ACTIVATED,
                organization_id=result.organization_id,
                subscription_id=payload.external_subscription_id,
                actor_id=payload.owner_user_id,
                metadata={"plan_id": result.plan_id.value},
            )
        )
        return WebhookOutcome(
            event_id=event.event_id,
            event_type=event.event_type,
            handled=True,
            organization_id=result.organization_id,
        )

    async def _handle_subscription_event(self, event: BillingWebhookEvent) -> WebhookOutcome:
        subscription = event.payload
        metadata = _metadata(subscription)
        deleted = event.event_type == BillingWebhookEventType.SUBSCRIPTION_DELETED.value
        payload = SubscriptionStatePayload(
            organization_id=metadata.get("organizationId"),
            owner_user_id=metadata.get("ownerUserId"),
            plan_id=metadata.get("planId") or metadata.get("plan_id") or "",
            status=SubscriptionStatus.CANCELED if deleted else subscription.get("status"),
            external_customer_id=_string_or_none(subscription.get("customer")),
            external_subscription_id=_string_or_none(subscription.get("id")),
            current_period_end=_period_end(subscription),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            source=EntitlementSource.WEBHOOK,
        )
        result = await self.synchronizer.apply_subscription_state(payload)

        if deleted:
            audit_type = BillingAuditEventType.SUBSCRIPTION_CANCELED
        elif result.status == SubscriptionStatus.ACTIVE:
            audit_type = BillingAuditEventType.SUBSCRIPTION_ACTIVATED
        else:
            audit_type = BillingAuditEventType.SUBSCRIPTION_UPDATED
        self.event_logger.log(
            BillingAuditEvent(
                event_type=audit_type,
                organization_id=result.organization_id,
                subscription_id=payload.external_subscription_id,
                actor_id=payload.owner_user_id,
                metadata={"status": result.status.value, "plan_id": result.plan_id.value},
            )
        )
        return WebhookOutcome(
            event_id=event.event_id,
            event_type=event.event_type,
            handled=True,
            organization_id=result.organization_id,
        )

    async def _handle_room_boost(self, event: BillingWebhookEvent) -> WebhookOutcome:
        session = event.payload
        metadata = _metadata(session)
        room_code = metadata.get("roomCode", "").strip()
        points = _whole_points(metadata.get("points"))
        session_id = _string_or_none(session.get("id")) or event.event_id
        if not room_code or points <= 0 or not session_id:
            logger.warning("Room boost checkout %s is missing room or points metadata", session_id)
            return WebhookOutcome(event_id=event.event_id, event_type=event.event_type, handled=False)

        checkout_path = document_path(CHECKOUT_EVENTS, session_id)
        if await self.store.get(checkout_path) is not None:
            logger.warning("Duplicate checkout completion for session %s", session_id)
            self.event_logger.log(
                BillingAuditEvent(
                    event_type=BillingAuditEventType.DUPLICATE_CHECKOUT,
                    metadata={"session_id": session_id, "room_code": room_code},
                )
            )
            return WebhookOutcome(
                event_id=event.event_id,
                event_type=event.event_type,
                handled=True,
                duplicate=True,
            )

        buyer_id = metadata.get("buyerUid", "").strip()
        scope = RewardScope.BUYER if metadata.get("rewardScope") == RewardScope.BUYER.value else RewardScope.ROOM
        badges = [buyer_id] if buyer_id and metadata.get("awardBadge") == "1" else []
        if scope == RewardScope.BUYER and buyer_id:
            recipients = [buyer_id]
            source = AwardSource.PURCHASE
        else:
            room = await self.rooms.get_room(room_code)
            recipients = list(room.participant_ids) if room else []
            source = AwardSource.TIP_CRATE

        award_key = f"checkout_{session_id}"
        result = await self._pay_in_chunks(room_code, award_key, recipients, points, source, badges, session_id)

        await self.store.set(
            checkout_path,
            {
                "roomCode": room_code,
                "points": points,
                "amount": _whole_points(session.get("amount_total")),
                "awardKey": award_key,
                "rewardScope": scope.value,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.ROOM_BOOST_APPLIED,
                actor_id=buyer_id or None,
                metadata={
                    "room_code": room_code,
                    "session_id": session_id,
                    "awarded_count": str(result.awarded_count),
                    "awarded_points": str(result.awarded_points),
                },
            )
        )
        return WebhookOutcome(
            event_id=event.event_id,
            event_type=event.event_type,
            handled=True,
            duplicate=result.duplicate,
            awards=result,
        )

    async def _pay_in_chunks(
        self,
        room_code: str,
        award_key: str,
        recipients: List[str],
        points: int,
        source: AwardSource,
        badges: List[str],
        session_id: str,
    ) -> AwardResult:
        """Pay every recipient, one award key per chunk of the recipient cap."""

        if not recipients:
            return AwardResult(applied=False, duplicate=False)

        applied = False
        duplicate = True
        awarded_count = 0
        awarded_points = 0
        skipped: List[str] = []
        for index in range(0, len(recipients), MAX_RECIPIENTS_PER_CALL):
            chunk = recipients[index : index + MAX_RECIPIENTS_PER_CALL]
            key = award_key if index == 0 else f"{award_key}_{index // MAX_RECIPIENTS_PER_CALL}"
            result = await self.award_ledger.apply_awards_once(
                room_code,
                key,
                [{"uid": uid, "points": points} for uid in chunk],
                source,
                badge_recipients=[uid for uid in badges if uid in chunk],
                metadata={"sessionId": session_id},
            )
            applied = applied or result.applied
            duplicate = duplicate and result.duplicate
            awarded_count += result.awarded_count
            awarded_points += result.awarded_points
            skipped.extend(result.skipped_recipients)
        return AwardResult(
            applied=applied,
            duplicate=duplicate,
            awarded_count=awarded_count,
            awarded_points=awarded_points,
            skipped_recipients=skipped,
        )


def _metadata(obj: Mapping[str, Any]) -> Dict[str, str]:
    value = obj.get("metadata")
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items() if v is not None}
    return {}


def _string_or_none(value: object) -> Optional[str]:
    if isinstance(value, Mapping):
        value = value.get("id")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _whole_points(value: object) -> int:
    try:
        number = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(number, 0)


def _period_end(subscription: Mapping[str, Any]) -> Optional[datetime]:
    value = subscription.get("current_period_end")
    if value is None:
        items = subscription.get("items")
        data = items.get("data") if isinstance(items, Mapping) else None
        if isinstance(data, list) and data and isinstance(data[0], Mapping):
            value = data[0].get("current_period_end")
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        if isinstance(value, str) and value:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except (ValueError, OverflowError, OSError) as exc:
        raise DataLossError(
            "Subscription period end is unreadable.",
            detail={"current_period_end": str(value)},
        ) from exc
    return None


__all__ = [
    "BillingEventLogger",
    "BillingService",
    "PaymentProvider",
]
