"""Custom exceptions used for feature gating enforcement."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from ..errors import PermissionDeniedError


class FeatureGateError(PermissionDeniedError):
    """Raised when an organization lacks the capability an operation needs."""

    def __init__(self, capability: str, message: Optional[str] = None, *, detail: Optional[Mapping[str, Any]] = None) -> None:
        body = {"reason": "capability-required", "missing_capability": capability}
        body.update(detail or {})
        super().__init__(message or f"Capability '{capability}' is required.", detail=body)
        self.capability = capability
