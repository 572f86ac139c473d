"""Convenience wrapper around entitlement snapshots for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from ..entitlements import EntitlementSnapshot
from .enforcement import require_capability, require_meter_capability


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for an organization's entitlements."""

    snapshot: EntitlementSnapshot

    @property
    def capabilities(self) -> Dict[str, bool]:
        return dict(self.snapshot.capabilities)

    @property
    def plan(self):
        return self.snapshot.plan_id

    @property
    def entitled(self) -> bool:
        return self.snapshot.entitled

    def has(self, capability: str) -> bool:
        return self.snapshot.has(capability)

    def require(self, capability: str) -> None:
        require_capability(self.snapshot.capabilities, capability)

    def require_meter(self, meter_id: str) -> None:
        require_meter_capability(self.snapshot.capabilities, meter_id)
