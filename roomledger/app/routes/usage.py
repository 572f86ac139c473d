"""API routes for usage metering."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..entitlements import EntitlementService
from ..feature_gates import RateLimiter, require_meter_capability
from ..metering import UsageMeterLedger, UsageSummary
from ..organizations import OrganizationService
from ..schemas.usage import UsageReserveRequest, UsageReserveResponse
from ..services.auth import CurrentUser, get_current_user
from ..services.ledger import (
    get_entitlement_service,
    get_organization_service,
    get_rate_limiter,
    get_usage_ledger,
)
from .common import enforce_rate_limit, ledger_errors

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.post("/reserve", response_model=UsageReserveResponse)
async def reserve_usage(
    payload: UsageReserveRequest,
    *,
    current_user: CurrentUser = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
    entitlements: EntitlementService = Depends(get_entitlement_service),
    ledger: UsageMeterLedger = Depends(get_usage_ledger),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> UsageReserveResponse:
    enforce_rate_limit(limiter, "usage.reserve", current_user.id)
    with ledger_errors():
        organization = await organizations.ensure_organization_for_user(
            current_user.id, current_user.display_name
        )
        snapshot = await entitlements.resolve_entitlements(organization.id)
        require_meter_capability(snapshot.capabilities, payload.meter_id)
        usage = await ledger.reserve_usage_units(organization.id, payload.meter_id, payload.units)
    return UsageReserveResponse(organization_id=organization.id, usage=usage)


@router.get("/{period_key}", response_model=UsageSummary)
async def get_usage_summary(
    period_key: str,
    *,
    current_user: CurrentUser = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
    ledger: UsageMeterLedger = Depends(get_usage_ledger),
) -> UsageSummary:
    with ledger_errors():
        organization = await organizations.ensure_organization_for_user(
            current_user.id, current_user.display_name
        )
        return await ledger.read_usage_summary(organization.id, period_key)


__all__ = ["router", "get_usage_summary", "reserve_usage"]
