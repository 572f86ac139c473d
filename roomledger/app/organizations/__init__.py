"""Organization domain models and services."""

from .models import Organization, OrganizationStatus
from .service import OrganizationService, organization_id_for_user

__all__ = [
    "Organization",
    "OrganizationService",
    "OrganizationStatus",
    "organization_id_for_user",
]
