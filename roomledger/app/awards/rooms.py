"""Room roster: hosts, participants and their point balances."""
from __future__ import annotations

import logging
from typing import Optional

from ..errors import FailedPreconditionError, NotFoundError, PermissionDeniedError
from ..store import SERVER_TIMESTAMP, ArrayUnion, DocumentStore, Transaction, document_path
from ..store.collections import ROOMS
from .models import Room
from .service import participant_path

logger = logging.getLogger(__name__)


class RoomDirectory:
    """Creates rooms and registers participants so awards have targets."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get_room(self, room_code: str) -> Optional[Room]:
        document = await self._store.get(document_path(ROOMS, room_code))
        if document is None:
            return None
        return Room.model_validate({"code": room_code, **document})

    async def create_room(self, room_code: str, host_id: str) -> Room:
        room_path = document_path(ROOMS, room_code)

        async def _create(transaction: Transaction) -> None:
            existing = await transaction.get(room_path)
            if existing is not None and existing.get("hostUid") != host_id:
                raise FailedPreconditionError(
                    "Room code is already in use.",
                    detail={"room_code": room_code},
                )
            if existing is None:
                transaction.set(
                    room_path,
                    {"hostUid": host_id, "participantIds": [], "createdAt": SERVER_TIMESTAMP},
                )

        await self._store.run_transaction(_create)
        room = await self.get_room(room_code)
        if room is None:
            raise NotFoundError("Room not found.", detail={"room_code": room_code})
        return room

    async def join_room(self, room_code: str, user_id: str, display_name: str = "") -> None:
        """Add a participant with a zero balance; rejoining keeps the balance."""

        room_path = document_path(ROOMS, room_code)
        member_path = participant_path(room_code, user_id)

        async def _join(transaction: Transaction) -> None:
            if not await transaction.exists(room_path):
                raise NotFoundError("Room not found.", detail={"room_code": room_code})
            existing = await transaction.get(member_path)
            if existing is None:
                transaction.set(
                    member_path,
                    {
                        "roomCode": room_code,
                        "uid": user_id,
                        "name": display_name or "Guest",
                        "points": 0,
                        "joinedAt": SERVER_TIMESTAMP,
                    },
                )
            transaction.set(room_path, {"participantIds": ArrayUnion(user_id)}, merge=True)

        await self._store.run_transaction(_join)
        logger.debug("User %s joined room %s", user_id, room_code)

    async def require_host(self, room_code: str, user_id: str) -> Room:
        room = await self.get_room(room_code)
        if room is None:
            raise NotFoundError("Room not found.", detail={"room_code": room_code})
        if room.host_id != user_id:
            raise PermissionDeniedError("Only the room host can award points.")
        return room


__all__ = ["RoomDirectory"]
