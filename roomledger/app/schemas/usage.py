"""API schemas for usage metering endpoints."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import MeterSummary


class UsageReserveRequest(BaseModel):
    meter_id: str = Field(alias="meterId", min_length=1)
    units: int = Field(default=1, ge=1, le=10_000)

    model_config = ConfigDict(populate_by_name=True)


class UsageReserveResponse(BaseModel):
    organization_id: str = Field(alias="organizationId")
    usage: MeterSummary

    model_config = ConfigDict(populate_by_name=True)


__all__ = ["UsageReserveRequest", "UsageReserveResponse"]
