"""Typed representations of point awards and their outcomes."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_POINTS_PER_RECIPIENT = 5000
MAX_RECIPIENTS_PER_CALL = 50


class AwardSource(str, Enum):
    """Origin of a point payout."""

    HOST_MANUAL = "host_manual"
    PURCHASE = "purchase"
    MINI_GAME = "mini_game"
    TIP_CRATE = "tip_crate"


class AwardEntry(BaseModel):
    """Points credited to one room participant."""

    recipient_id: str
    points: int = Field(ge=0, le=MAX_POINTS_PER_RECIPIENT)

    model_config = ConfigDict(frozen=True)


class AwardResult(BaseModel):
    """Outcome of an idempotent award call; replays report ``duplicate``."""

    applied: bool
    duplicate: bool
    awarded_count: int = 0
    awarded_points: int = 0
    skipped_recipients: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class Room(BaseModel):
    """Live room roster used to authorize and target awards."""

    code: str
    host_id: str = Field(alias="hostUid")
    participant_ids: List[str] = Field(default_factory=list, alias="participantIds")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = [
    "AwardEntry",
    "AwardResult",
    "AwardSource",
    "MAX_POINTS_PER_RECIPIENT",
    "MAX_RECIPIENTS_PER_CALL",
    "Room",
]
