"""Application wiring for the billing service."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional, Union
from uuid import uuid4

import stripe

from ..billing import (
    BillingAuditEvent,
    BillingEventLogger,
    BillingService,
    BillingWebhookEvent,
    CheckoutMode,
    PaymentProvider,
)
from ..entitlements.catalog import get_plan_definition
from ..entitlements.models import BillingInterval, PlanKey
from ..errors import InvalidArgumentError
from .ledger import (
    get_award_ledger,
    get_document_store,
    get_ledger_config,
    get_room_directory,
    get_subscription_synchronizer,
)


logger = logging.getLogger("billing")


class WebhookSignatureError(InvalidArgumentError):
    """Raised when a webhook payload cannot be authenticated."""


class LoggingBillingEventLogger(BillingEventLogger):
    """Simple event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s organization=%s actor=%s metadata=%s",
            event.event_type.value,
            event.organization_id,
            event.actor_id,
            event.metadata,
        )


class LocalSandboxPaymentProvider(PaymentProvider):
    """Minimal provider implementation for local development and tests."""

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
        session_id = f"cs_{uuid4().hex}"
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=30)
        url = f"https://billing.local/checkout/{session_id}"
        return {
            "id": session_id,
            "url": url,
            "expires_at": expires_at,
            "mode": mode.value,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }

    def create_billing_portal_session(self, *, customer_id: str, return_url: str) -> Dict[str, object]:
        session_id = f"ps_{uuid4().hex}"
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=15)
        url = f"https://billing.local/portal/{customer_id}"
        return {"id": session_id, "url": url, "expires_at": expires_at, "return_url": return_url}


def _from_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


class StripePaymentProvider(PaymentProvider):
    """Provider backed by Stripe hosted checkout and the customer portal."""

    def __init__(self, api_key: str, *, currency: str = "usd") -> None:
        self._api_key = api_key
        self._currency = currency.lower()

    def _price_data(self, plan_key: Optional[PlanKey], amount_cents: int, label: str) -> Dict[str, Any]:
        price: Dict[str, Any] = {
            "currency": self._currency,
            "unit_amount": amount_cents,
            "product_data": {"name": label},
        }
        plan = get_plan_definition(plan_key) if plan_key else None
        if plan is not None and plan.interval != BillingInterval.NONE:
            price["recurring"] = {"interval": plan.interval.value}
        return price

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
        params: Dict[str, Any] = {
            "mode": mode.value,
            "line_items": [{"price_data": self._price_data(plan_key, int(amount_cents or 0), label), "quantity": 1}],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if mode == CheckoutMode.SUBSCRIPTION:
            params["subscription_data"] = {"metadata": metadata}
        session = stripe.checkout.Session.create(api_key=self._api_key, **params)
        return {
            "id": session.id,
            "url": session.url,
            "expires_at": _from_timestamp(session.get("expires_at")),
        }

    def create_billing_portal_session(self, *, customer_id: str, return_url: str) -> Dict[str, object]:
        session = stripe.billing_portal.Session.create(
            api_key=self._api_key,
            customer=customer_id,
            return_url=return_url,
        )
        return {"id": session.id, "url": session.url, "expires_at": None}


class StripeWebhookVerifier:
    """Authenticates webhook deliveries with the endpoint signing secret."""

    def __init__(self, secret: Optional[str]) -> None:
        self._secret = secret

    def verify(self, payload: Union[bytes, str], signature: Optional[str]) -> BillingWebhookEvent:
        if not self._secret:
            raise WebhookSignatureError("Webhook signing secret is not configured.")
        if not signature:
            raise WebhookSignatureError("Missing webhook signature.")
        try:
            stripe.Webhook.construct_event(payload, signature, self._secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning("Rejected webhook with invalid signature")
            raise WebhookSignatureError("Invalid webhook signature.") from exc
        except ValueError as exc:
            raise WebhookSignatureError("Webhook payload is not valid JSON.") from exc

        raw = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        return BillingWebhookEvent.from_processor_event(json.loads(raw))


@lru_cache(maxsize=1)
def get_payment_provider() -> PaymentProvider:
    config = get_ledger_config()
    if config.stripe_secret_key:
        return StripePaymentProvider(config.stripe_secret_key, currency=config.invoice_currency)
    logger.info("STRIPE_SECRET_KEY not set; using local sandbox payment provider")
    return LocalSandboxPaymentProvider()


@lru_cache(maxsize=1)
def get_webhook_verifier() -> StripeWebhookVerifier:
    return StripeWebhookVerifier(get_ledger_config().stripe_webhook_secret)


@lru_cache(maxsize=1)
def get_billing_service() -> BillingService:
    config = get_ledger_config()
    service = BillingService(
        store=get_document_store(),
        synchronizer=get_subscription_synchronizer(),
        award_ledger=get_award_ledger(),
        rooms=get_room_directory(),
        provider=get_payment_provider(),
        event_logger=LoggingBillingEventLogger(),
        app_base_url=config.app_base_url,
    )
    return service


__all__ = [
    "LocalSandboxPaymentProvider",
    "LoggingBillingEventLogger",
    "StripePaymentProvider",
    "StripeWebhookVerifier",
    "WebhookSignatureError",
    "get_billing_service",
    "get_payment_provider",
    "get_webhook_verifier",
]
