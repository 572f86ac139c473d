"""Billing domain package: subscription sync, checkout and webhooks."""

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
    SubscriptionSyncResult,
    WebhookOutcome,
)
from .service import BillingEventLogger, BillingService, PaymentProvider
from .sync import SubscriptionSynchronizer

__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingEventLogger",
    "BillingService",
    "BillingWebhookEvent",
    "BillingWebhookEventType",
    "CheckoutMode",
    "CheckoutSession",
    "PaymentProvider",
    "PortalSession",
    "RewardScope",
    "SubscriptionStatePayload",
    "SubscriptionSyncResult",
    "SubscriptionSynchronizer",
    "WebhookOutcome",
]
