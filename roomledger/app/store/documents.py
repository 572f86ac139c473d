"""Document paths, write sentinels and merge semantics shared by every store."""
from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from ..errors import InvalidArgumentError


@dataclass(frozen=True)
class Increment:
    """Atomically add ``amount`` to the numeric field it is written to."""

    amount: int | float


@dataclass(frozen=True)
class ArrayUnion:
    """Append the given values to a list field, skipping ones already present."""

    values: Tuple[Any, ...]

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class PendingWrite:
    """A buffered mutation awaiting an atomic commit."""

    path: str
    data: Optional[Mapping[str, Any]]
    merge: bool = False
    must_exist: bool = False
    delete: bool = False


def document_path(collection: str, document_id: str) -> str:
    """Build ``collection/document_id`` rejecting ids that would nest paths."""

    doc_id = (document_id or "").strip()
    if not doc_id:
        raise InvalidArgumentError(f"{collection} document id must be a non-empty string.")
    if "/" in doc_id:
        raise InvalidArgumentError(
            f"{collection} document id may not contain '/'.",
            detail={"document_id": doc_id},
        )
    return f"{collection}/{doc_id}"


def validate_path(path: str) -> str:
    segments = [segment for segment in (path or "").split("/")]
    if len(segments) < 2 or len(segments) % 2 != 0 or not all(segments):
        raise InvalidArgumentError(f"Invalid document path: {path!r}")
    return path


def _resolve_value(value: Any, existing: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return now.isoformat()
    if isinstance(value, Increment):
        if isinstance(existing, (int, float)) and not isinstance(existing, bool):
            return existing + value.amount
        return value.amount
    if isinstance(value, ArrayUnion):
        current = list(existing) if isinstance(existing, list) else []
        for item in value.values:
            if item not in current:
                current.append(item)
        return current
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, Mapping):
        base = existing if isinstance(existing, dict) else {}
        return {str(key): _resolve_value(item, base.get(key), now) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_resolve_value(item, None, now) for item in value]
    return copy.deepcopy(value)


def _deep_merge(existing: Dict[str, Any], data: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
    merged = dict(existing)
    for key, value in data.items():
        current = merged.get(key)
        if (
            isinstance(value, Mapping)
            and isinstance(current, dict)
        ):
            merged[key] = _deep_merge(current, value, now)
        else:
            merged[key] = _resolve_value(value, current, now)
    return merged


def _normalize_timestamps(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _normalize_timestamps(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalize_timestamps(item) for item in value]
    return value


def apply_write(
    existing: Optional[Mapping[str, Any]],
    data: Mapping[str, Any],
    *,
    merge: bool,
    now: datetime,
) -> Dict[str, Any]:
    """Return the document produced by writing ``data`` over ``existing``.

    Merge writes deep-merge nested mappings so sibling fields survive; plain
    writes replace the document. Sentinels resolve against the prior value.
    Datetimes are stored as ISO-8601 strings so documents stay JSON-native.
    """

    if merge and existing is not None:
        result = _deep_merge(copy.deepcopy(dict(existing)), data, now)
    else:
        result = _resolve_value(dict(data), {}, now)
    return _normalize_timestamps(result)


__all__ = [
    "ArrayUnion",
    "Increment",
    "PendingWrite",
    "SERVER_TIMESTAMP",
    "apply_write",
    "document_path",
    "validate_path",
]
