"""API schemas for room award endpoints."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..awards import AwardSource


class AwardItem(BaseModel):
    uid: str = Field(min_length=1)
    points: int

    model_config = ConfigDict(populate_by_name=True)


class AwardRequest(BaseModel):
    award_key: str = Field(alias="awardKey", min_length=1, max_length=200)
    awards: List[AwardItem] = Field(min_length=1, max_length=200)
    source: AwardSource = AwardSource.HOST_MANUAL
    badge_recipients: List[str] = Field(alias="badgeRecipients", default_factory=list)
    metadata: Optional[Dict[str, str]] = None

    model_config = ConfigDict(populate_by_name=True)


class RoomJoinRequest(BaseModel):
    display_name: str = Field(alias="displayName", default="", max_length=80)

    model_config = ConfigDict(populate_by_name=True)


__all__ = ["AwardItem", "AwardRequest", "RoomJoinRequest"]
