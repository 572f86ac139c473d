"""Exactly-once point payouts to live room participants."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..errors import InvalidArgumentError
from ..store import SERVER_TIMESTAMP, DocumentStore, Increment, Transaction, document_path
from ..store.collections import AWARD_EVENTS, ROOM_USERS
from .models import (
    MAX_POINTS_PER_RECIPIENT,
    MAX_RECIPIENTS_PER_CALL,
    AwardEntry,
    AwardResult,
    AwardSource,
)

logger = logging.getLogger(__name__)

AwardInput = Union[AwardEntry, Mapping[str, Any]]

_RECIPIENT_KEYS = ("recipient_id", "recipientId", "uid")


def participant_path(room_id: str, user_id: str) -> str:
    return document_path(ROOM_USERS, f"{room_id}_{user_id}")


def _recipient_of(award: AwardInput) -> str:
    if isinstance(award, AwardEntry):
        return award.recipient_id.strip()
    for key in _RECIPIENT_KEYS:
        value = award.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _points_of(award: AwardInput) -> int:
    raw = award.points if isinstance(award, AwardEntry) else award.get("points")
    if isinstance(raw, bool):
        return 0
    try:
        number = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number <= 0:
        return 0
    return math.floor(number)


def normalize_awards(awards: Iterable[AwardInput]) -> List[AwardEntry]:
    """Aggregate awards per recipient and drop unusable entries.

    Points for a repeated recipient are summed and the total is clamped to
    ``MAX_POINTS_PER_RECIPIENT``. Entries with a blank recipient or a
    non-positive, non-numeric point value are dropped. Recipients keep the
    order in which they first appear.
    """

    totals: Dict[str, int] = {}
    for award in awards or ():
        if not isinstance(award, (AwardEntry, Mapping)):
            continue
        recipient = _recipient_of(award)
        if not recipient or "/" in recipient:
            continue
        points = _points_of(award)
        if points <= 0:
            continue
        totals[recipient] = totals.get(recipient, 0) + points

    return [
        AwardEntry(recipient_id=recipient, points=min(total, MAX_POINTS_PER_RECIPIENT))
        for recipient, total in totals.items()
        if total > 0
    ]


def _require_key(value: str, name: str) -> str:
    normalized = str(value or "").strip()
    if not normalized:
        raise InvalidArgumentError(f"{name} is required.")
    if "/" in normalized:
        raise InvalidArgumentError(f"{name} may not contain '/'.", detail={name: normalized})
    return normalized


def _parse_source(source: Union[AwardSource, str]) -> AwardSource:
    try:
        return AwardSource(source)
    except ValueError as exc:
        raise InvalidArgumentError(
            f"Unsupported award source {source!r}.",
            detail={"source": str(source)},
        ) from exc


class AwardLedger:
    """Applies awards so that each award key pays out at most once.

    The dedup record and the balance increments commit in the same
    transaction, so a retry after a successful commit always finds the
    record and changes nothing.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def apply_awards_once(
        self,
        room_id: str,
        award_key: str,
        awards: Iterable[AwardInput],
        source: Union[AwardSource, str],
        *,
        badge_recipients: Iterable[str] = (),
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AwardResult:
        room = _require_key(room_id, "room_id")
        key = _require_key(award_key, "award_key")
        award_source = _parse_source(source)
        normalized = normalize_awards(awards)
        if not normalized:
            raise InvalidArgumentError("No valid awards were supplied.")
        if len(normalized) > MAX_RECIPIENTS_PER_CALL:
            raise InvalidArgumentError(
                f"At most {MAX_RECIPIENTS_PER_CALL} recipients can be awarded at once.",
                detail={"recipients": len(normalized)},
            )
        badges = {str(uid).strip() for uid in badge_recipients if str(uid or "").strip()}
        event_path = document_path(AWARD_EVENTS, key)

        async def _apply(transaction: Transaction) -> AwardResult:
            if await transaction.exists(event_path):
                return AwardResult(applied=False, duplicate=True)

            applied: List[AwardEntry] = []
            skipped: List[str] = []
            for entry in normalized:
                if await transaction.exists(participant_path(room, entry.recipient_id)):
                    applied.append(entry)
                else:
                    skipped.append(entry.recipient_id)

            for entry in applied:
                update: Dict[str, Any] = {
                    "points": Increment(entry.points),
                    "updatedAt": SERVER_TIMESTAMP,
                }
                if entry.recipient_id in badges:
                    update["roomBoostBadge"] = True
                    update["roomBoosts"] = Increment(1)
                transaction.update(participant_path(room, entry.recipient_id), update)

            result = AwardResult(
                applied=True,
                duplicate=False,
                awarded_count=len(applied),
                awarded_points=sum(entry.points for entry in applied),
                skipped_recipients=skipped,
            )
            transaction.set(
                event_path,
                {
                    "roomCode": room,
                    "awardKey": key,
                    "source": award_source.value,
                    "awards": [{"uid": entry.recipient_id, "points": entry.points} for entry in applied],
                    "skipped": skipped,
                    "awardedCount": result.awarded_count,
                    "awardedPoints": result.awarded_points,
                    "metadata": dict(metadata or {}),
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
            return result

        result = await self._store.run_transaction(_apply)
        if result.duplicate:
            logger.warning("Ignoring replayed award key %s in room %s", key, room)
        else:
            logger.info(
                "Applied %s award(s) totalling %s points in room %s (key=%s, source=%s, skipped=%s)",
                result.awarded_count,
                result.awarded_points,
                room,
                key,
                award_source.value,
                len(result.skipped_recipients),
            )
        return result


__all__ = ["AwardLedger", "normalize_awards", "participant_path"]
