"""API routes exposing billing functionality."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from ...config import LedgerConfig
from ..billing import BillingService
from ..entitlements import Capability, EntitlementService, EntitlementSnapshot, normalize_plan_id
from ..feature_gates import RateLimiter, require_capability
from ..invoices import InvoiceDraft, InvoiceOptions, build_invoice_draft, summarize_usage_counts
from ..metering import UsageMeterLedger, period_key_for, validate_period_key
from ..organizations import Organization, OrganizationService
from ..schemas.billing import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    InvoicePreviewRequest,
    PortalSessionRequest,
    PortalSessionResponse,
    WebhookResponse,
)
from ..services.auth import CurrentUser, get_current_user, get_optional_current_user
from ..services.billing import StripeWebhookVerifier, get_billing_service, get_webhook_verifier
from ..services.ledger import (
    get_entitlement_service,
    get_ledger_config,
    get_organization_service,
    get_rate_limiter,
    get_usage_ledger,
)
from .common import enforce_rate_limit, ledger_errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.post("/checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    payload: CheckoutSessionRequest,
    *,
    current_user: CurrentUser = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
    service: BillingService = Depends(get_billing_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> CheckoutSessionResponse:
    enforce_rate_limit(limiter, "billing.checkout", current_user.id)
    with ledger_errors():
        organization = await organizations.ensure_organization_for_user(
            current_user.id, current_user.display_name
        )
        await organizations.require_owner(organization.id, current_user.id)
        session = service.create_checkout_session(
            organization_id=organization.id,
            owner_user_id=current_user.id,
            plan_key=payload.plan_id,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
    return CheckoutSessionResponse.from_checkout(session)


@router.post("/portal-session", response_model=PortalSessionResponse)
async def create_portal_session(
    payload: PortalSessionRequest,
    *,
    current_user: CurrentUser = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
    service: BillingService = Depends(get_billing_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> PortalSessionResponse:
    enforce_rate_limit(limiter, "billing.portal", current_user.id)
    with ledger_errors():
        organization = await organizations.ensure_organization_for_user(
            current_user.id, current_user.display_name
        )
        await organizations.require_owner(organization.id, current_user.id)
        session = await service.create_portal_session(
            organization_id=organization.id,
            return_url=payload.return_url,
        )
    return PortalSessionResponse.from_portal(session)


@router.post("/webhook", response_model=WebhookResponse)
async def receive_webhook(
    request: Request,
    *,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    verifier: StripeWebhookVerifier = Depends(get_webhook_verifier),
    service: BillingService = Depends(get_billing_service),
) -> WebhookResponse:
    """Apply a signed processor event; redeliveries are acknowledged without side effects."""

    body = await request.body()
    with ledger_errors():
        event = verifier.verify(body, stripe_signature)
        outcome = await service.handle_webhook(event)
    if outcome.duplicate:
        logger.info("Webhook %s (%s) was a duplicate delivery", outcome.event_id, outcome.event_type)
    return WebhookResponse.from_outcome(outcome)


@router.get("/invoice-draft", response_model=InvoiceDraft)
async def get_invoice_draft(
    period: Optional[str] = Query(default=None, description="Billing period as YYYYMM"),
    *,
    current_user: CurrentUser = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
    entitlements: EntitlementService = Depends(get_entitlement_service),
    ledger: UsageMeterLedger = Depends(get_usage_ledger),
    config: LedgerConfig = Depends(get_ledger_config),
) -> InvoiceDraft:
    """Compile the draft invoice for the caller's organization and period."""

    with ledger_errors():
        period_key = validate_period_key(period) if period else period_key_for()
        organization = await organizations.ensure_organization_for_user(
            current_user.id, current_user.display_name
        )
        snapshot = await entitlements.resolve_entitlements(organization.id)
        require_capability(
            snapshot.capabilities,
            Capability.BILLING_INVOICE_DRAFTS.value,
            message="Invoice drafts require a host plan.",
        )
        usage = await ledger.read_usage_summary(organization.id, period_key)
    return build_invoice_draft(
        organization,
        snapshot,
        usage,
        InvoiceOptions(
            tax_rate_percent=config.invoice_tax_rate_percent,
            currency=config.invoice_currency,
        ),
    )


@router.post("/invoice-draft/preview", response_model=InvoiceDraft)
def preview_invoice_draft(
    payload: InvoicePreviewRequest,
    *,
    current_user: Optional[CurrentUser] = Depends(get_optional_current_user),
    config: LedgerConfig = Depends(get_ledger_config),
) -> InvoiceDraft:
    """Price hypothetical usage with the current catalog; nothing is read or written."""

    with ledger_errors():
        period_key = validate_period_key(payload.period) if payload.period else period_key_for()
    plan_id = normalize_plan_id(payload.plan_id)
    usage = summarize_usage_counts(payload.organization_id, period_key, plan_id, payload.status, payload.usage)
    snapshot = EntitlementSnapshot(
        organization_id=payload.organization_id,
        plan_id=plan_id,
        status=payload.status,
        entitled=payload.status.is_entitled,
    )
    organization = Organization(
        id=payload.organization_id,
        owner_id=current_user.id if current_user else "preview",
        name=payload.organization_name,
        plan_id=plan_id,
        subscription_status=payload.status,
    )
    tax_rate = config.invoice_tax_rate_percent if payload.tax_rate_percent is None else payload.tax_rate_percent
    return build_invoice_draft(
        organization,
        snapshot,
        usage,
        InvoiceOptions(
            tax_rate_percent=tax_rate,
            currency=payload.currency or config.invoice_currency,
            include_base_plan=payload.include_base_plan,
        ),
    )


__all__ = [
    "router",
    "create_checkout_session",
    "create_portal_session",
    "get_invoice_draft",
    "preview_invoice_draft",
    "receive_webhook",
]
