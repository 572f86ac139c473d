"""Helpers for enforcing capability checks on API and service layers."""
from __future__ import annotations

from typing import Mapping, Optional

from ..entitlements.catalog import get_meter_definition
from ..errors import InvalidMeterError
from .exceptions import FeatureGateError


def require_capability(
    capabilities: Mapping[str, object],
    capability: str,
    *,
    message: Optional[str] = None,
) -> None:
    """Ensure a capability flag is enabled before proceeding.

    Parameters
    ----------
    capabilities:
        Capability map as resolved for the organization.
    capability:
        The canonical capability key that must evaluate truthy.
    message:
        Optional human-friendly message explaining the failure. If omitted, a
        default message mentioning the missing capability is used.
    """

    if not bool(capabilities.get(capability)):
        raise FeatureGateError(capability, message)


def require_meter_capability(capabilities: Mapping[str, object], meter_id: str) -> None:
    """Ensure the capability gating a meter is enabled."""

    meter = get_meter_definition(meter_id)
    if meter is None:
        raise InvalidMeterError(f"Unknown usage meter '{meter_id}'.", detail={"meter_id": meter_id})
    require_capability(
        capabilities,
        meter.capability.value,
        message=f"Your plan does not include {meter.label}.",
    )
