"""Service layer for organization lookup and lazy creation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ..errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from ..store import DocumentStore, Transaction, document_path
from ..store.collections import ORGANIZATIONS, USERS
from .models import Organization

logger = logging.getLogger(__name__)


def organization_id_for_user(user_id: str) -> str:
    """Deterministic organization id for a user that has none yet."""

    return f"org_{user_id}"


def _current_time(clock: Optional[Callable[[], datetime]]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    value = clock()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _require_user_id(user_id: str) -> str:
    normalized = (user_id or "").strip()
    if not normalized or "/" in normalized:
        raise InvalidArgumentError("A valid user id is required.")
    return normalized


@dataclass
class OrganizationService:
    """Coordinates store access and ownership invariants for organizations."""

    store: DocumentStore
    clock: Optional[Callable[[], datetime]] = None

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        document = await self.store.get(document_path(ORGANIZATIONS, organization_id))
        if document is None:
            return None
        return Organization.from_document({"id": organization_id, **document})

    async def resolve_organization_id_for_user(self, user_id: str) -> Optional[str]:
        """Return the organization a user owns, or ``None`` when it has not been created."""

        uid = _require_user_id(user_id)
        profile = await self.store.get(document_path(USERS, uid)) or {}
        stored = str(profile.get("organizationId") or "").strip()
        if stored:
            return stored
        candidate = organization_id_for_user(uid)
        if await self.store.get(document_path(ORGANIZATIONS, candidate)) is not None:
            return candidate
        return None

    async def ensure_organization_for_user(
        self,
        user_id: str,
        display_name: Optional[str] = None,
    ) -> Organization:
        """Return the user's organization, creating it on first use.

        The read and the create run in one transaction so concurrent first
        requests from the same user converge on a single organization.
        """

        uid = _require_user_id(user_id)
        user_path = document_path(USERS, uid)
        now = _current_time(self.clock)
        created = False

        async def _ensure(transaction: Transaction) -> Organization:
            nonlocal created
            created = False
            profile = await transaction.get(user_path) or {}
            org_id = str(profile.get("organizationId") or "").strip() or organization_id_for_user(uid)
            org_path = document_path(ORGANIZATIONS, org_id)
            existing = await transaction.get(org_path)
            if existing is not None:
                if profile.get("organizationId") != org_id:
                    transaction.set(user_path, {"organizationId": org_id}, merge=True)
                return Organization.from_document({"id": org_id, **existing})

            name = (display_name or "").strip() or str(profile.get("name") or "").strip()
            organization = Organization(
                id=org_id,
                owner_id=uid,
                name=name or f"{uid}'s workspace",
                created_at=now,
                updated_at=now,
            )
            transaction.set(org_path, organization.to_document())
            transaction.set(user_path, {"organizationId": org_id}, merge=True)
            created = True
            return organization

        organization = await self.store.run_transaction(_ensure)
        if created:
            logger.info("Created organization %s for user %s", organization.id, uid)
        return organization

    async def require_owner(self, organization_id: str, user_id: str) -> Organization:
        organization = await self.get_organization(organization_id)
        if organization is None:
            raise NotFoundError("Organization not found.", detail={"organization_id": organization_id})
        if organization.owner_id != user_id:
            raise PermissionDeniedError("Only the organization owner can manage billing.")
        return organization


__all__ = ["OrganizationService", "organization_id_for_user"]
