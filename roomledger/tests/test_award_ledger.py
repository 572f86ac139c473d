from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.app.awards import (
    AwardLedger,
    AwardSource,
    RoomDirectory,
    normalize_awards,
    participant_path,
)
from roomledger.app.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from roomledger.app.store import InMemoryDocumentStore


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(max_attempts=32)


@pytest.fixture
def rooms(store: InMemoryDocumentStore) -> RoomDirectory:
    directory = RoomDirectory(store)

    async def seed():
        await directory.create_room("ROOM1", "host")
        for uid in ("host", "a", "b"):
            await directory.join_room("ROOM1", uid, uid.upper())

    asyncio.run(seed())
    return directory


@pytest.fixture
def ledger(store: InMemoryDocumentStore) -> AwardLedger:
    return AwardLedger(store)


def _points(store: InMemoryDocumentStore, uid: str) -> int:
    return asyncio.run(store.get(participant_path("ROOM1", uid)))["points"]


def test_normalize_awards_sums_clamps_and_drops() -> None:
    entries = normalize_awards(
        [
            {"uid": "a", "points": 10},
            {"uid": "a", "points": 5},
            {"uid": "b", "points": 0},
            {"uid": "", "points": 3},
            {"uid": "c", "points": 99999},
            {"uid": "d", "points": "7.8"},
            {"uid": "e", "points": True},
            {"uid": "x/y", "points": 4},
            {"recipientId": "f", "points": -2},
        ]
    )

    assert [(entry.recipient_id, entry.points) for entry in entries] == [
        ("a", 15),
        ("c", 5000),
        ("d", 7),
    ]


def test_award_is_applied_exactly_once(store, rooms, ledger) -> None:
    awards = [{"uid": "a", "points": 10}, {"uid": "a", "points": 5}, {"uid": "b", "points": 3}]

    first = asyncio.run(ledger.apply_awards_once("ROOM1", "round-1", awards, AwardSource.HOST_MANUAL))
    second = asyncio.run(ledger.apply_awards_once("ROOM1", "round-1", awards, AwardSource.HOST_MANUAL))

    assert first.applied is True and first.duplicate is False
    assert first.awarded_count == 2
    assert first.awarded_points == 18
    assert second.applied is False and second.duplicate is True
    assert _points(store, "a") == 15
    assert _points(store, "b") == 3

    event = asyncio.run(store.get("award_events/round-1"))
    assert event["awards"] == [{"uid": "a", "points": 15}, {"uid": "b", "points": 3}]
    assert event["source"] == "host_manual"


def test_concurrent_replays_pay_once(store, rooms, ledger) -> None:
    async def scenario():
        return await asyncio.gather(
            *(
                ledger.apply_awards_once("ROOM1", "tip-7", [{"uid": "b", "points": 25}], "tip_crate")
                for _ in range(8)
            )
        )

    results = asyncio.run(scenario())

    assert sum(1 for result in results if result.applied) == 1
    assert sum(1 for result in results if result.duplicate) == 7
    assert _points(store, "b") == 25


def test_missing_participants_are_skipped(store, rooms, ledger) -> None:
    result = asyncio.run(
        ledger.apply_awards_once(
            "ROOM1",
            "round-2",
            [{"uid": "a", "points": 4}, {"uid": "ghost", "points": 9}],
            "mini_game",
        )
    )

    assert result.awarded_count == 1
    assert result.awarded_points == 4
    assert result.skipped_recipients == ["ghost"]
    assert asyncio.run(store.get(participant_path("ROOM1", "ghost"))) is None


def test_badges_are_set_for_badge_recipients(store, rooms, ledger) -> None:
    asyncio.run(
        ledger.apply_awards_once(
            "ROOM1",
            "boost-1",
            [{"uid": "a", "points": 50}],
            AwardSource.PURCHASE,
            badge_recipients=["a"],
        )
    )

    participant = asyncio.run(store.get(participant_path("ROOM1", "a")))
    assert participant["roomBoostBadge"] is True
    assert participant["roomBoosts"] == 1


def test_invalid_award_calls_are_rejected(rooms, ledger) -> None:
    with pytest.raises(InvalidArgumentError):
        asyncio.run(ledger.apply_awards_once("ROOM1", "", [{"uid": "a", "points": 1}], "host_manual"))
    with pytest.raises(InvalidArgumentError):
        asyncio.run(ledger.apply_awards_once("ROOM1", "k", [{"uid": "a", "points": 0}], "host_manual"))
    with pytest.raises(InvalidArgumentError):
        asyncio.run(ledger.apply_awards_once("ROOM1", "k", [{"uid": "a", "points": 1}], "lottery"))


def test_more_than_fifty_recipients_is_rejected(store, rooms, ledger) -> None:
    awards = [{"uid": f"user{index}", "points": 1} for index in range(51)]

    with pytest.raises(InvalidArgumentError) as exc:
        asyncio.run(ledger.apply_awards_once("ROOM1", "too-many", awards, "host_manual"))

    assert exc.value.payload["recipients"] == 51
    assert asyncio.run(store.get("award_events/too-many")) is None


def test_room_directory_host_rules(store, rooms) -> None:
    with pytest.raises(FailedPreconditionError):
        asyncio.run(rooms.create_room("ROOM1", "someone-else"))
    with pytest.raises(PermissionDeniedError):
        asyncio.run(rooms.require_host("ROOM1", "a"))
    with pytest.raises(NotFoundError):
        asyncio.run(rooms.join_room("NOPE", "a"))

    room = asyncio.run(rooms.require_host("ROOM1", "host"))
    assert room.participant_ids == ["host", "a", "b"]


def test_rejoining_keeps_balance(store, rooms, ledger) -> None:
    asyncio.run(ledger.apply_awards_once("ROOM1", "r", [{"uid": "a", "points": 12}], "host_manual"))
    asyncio.run(rooms.join_room("ROOM1", "a", "A again"))

    assert _points(store, "a") == 12
    room = asyncio.run(rooms.get_room("ROOM1"))
    assert room.participant_ids.count("a") == 1
