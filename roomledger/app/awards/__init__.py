"""Idempotent point awards for live rooms."""

from .models import (
    MAX_POINTS_PER_RECIPIENT,
    MAX_RECIPIENTS_PER_CALL,
    AwardEntry,
    AwardResult,
    AwardSource,
    Room,
)
from .rooms import RoomDirectory
from .service import AwardLedger, normalize_awards, participant_path

__all__ = [
    "MAX_POINTS_PER_RECIPIENT",
    "MAX_RECIPIENTS_PER_CALL",
    "AwardEntry",
    "AwardLedger",
    "AwardResult",
    "AwardSource",
    "Room",
    "RoomDirectory",
    "normalize_awards",
    "participant_path",
]
