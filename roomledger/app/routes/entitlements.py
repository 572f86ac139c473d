"""API routes exposing resolved entitlements."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..entitlements import EntitlementService, EntitlementSnapshot
from ..organizations import OrganizationService
from ..services.auth import CurrentUser, get_current_user
from ..services.ledger import get_entitlement_service, get_organization_service
from .common import ledger_errors

router = APIRouter(prefix="/api/entitlements", tags=["entitlements"])


@router.get("", response_model=EntitlementSnapshot)
async def get_entitlements(
    *,
    current_user: CurrentUser = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
    entitlements: EntitlementService = Depends(get_entitlement_service),
) -> EntitlementSnapshot:
    """Return the caller's organization entitlements, creating the organization on first use."""

    with ledger_errors():
        organization = await organizations.ensure_organization_for_user(
            current_user.id, current_user.display_name
        )
        return await entitlements.resolve_entitlements(organization.id)


__all__ = ["router", "get_entitlements"]
