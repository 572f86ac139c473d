"""In-memory document store suitable for tests and local development."""
from __future__ import annotations

import asyncio
import copy
import logging
import random
import threading
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

from ..errors import LedgerUnavailableError, NotFoundError
from .base import Transaction, TransactionConflict, TransactionUsageError
from .documents import PendingWrite, apply_write, validate_path

T = TypeVar("T")

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """Optimistically versioned store with the same semantics as the real backend.

    Every document carries a version that is bumped on each committed write.
    A transaction records the versions it read and is rejected at commit time
    when any of them moved, after which the whole transaction function is run
    again. Commit validation and application happen without yielding to the
    event loop, so they are serialized against every other commit.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.001,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, int] = {}
        self._lock = threading.Lock()
        self._max_attempts = max_attempts
        self._backoff_seconds = max(backoff_seconds, 0.0)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.commit_count = 0
        self.conflict_count = 0

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        _, data = self._snapshot(validate_path(path))
        return data

    async def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        self._commit({}, [PendingWrite(path=validate_path(path), data=data, merge=merge)])

    def batch(self) -> "InMemoryWriteBatch":
        return InMemoryWriteBatch(self)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            transaction = InMemoryTransaction(self)
            try:
                result = await fn(transaction)
                self._commit(transaction.read_versions, transaction.pending_writes)
            except TransactionConflict:
                self.conflict_count += 1
                if attempt >= self._max_attempts:
                    logger.warning("Transaction abandoned after %s conflicting attempts", attempt)
                    raise LedgerUnavailableError(
                        "Transaction could not be committed; retry with the same request.",
                        detail={"attempts": attempt},
                    )
                logger.debug("Transaction conflict on attempt %s; retrying", attempt)
                await asyncio.sleep(random.uniform(0, self._backoff_seconds * attempt))
                continue
            return result

    def dump(self) -> Dict[str, Dict[str, Any]]:
        """Return a deep copy of every stored document keyed by path."""

        with self._lock:
            return copy.deepcopy(self._documents)

    def _snapshot(self, path: str) -> Tuple[int, Optional[Dict[str, Any]]]:
        with self._lock:
            version = self._versions.get(path, 0)
            data = self._documents.get(path)
            return version, copy.deepcopy(data) if data is not None else None

    def _commit(self, read_versions: Mapping[str, int], writes: List[PendingWrite]) -> None:
        with self._lock:
            for path, version in read_versions.items():
                if self._versions.get(path, 0) != version:
                    raise TransactionConflict(path)

            now = self._clock()
            staged: Dict[str, Optional[Dict[str, Any]]] = {}
            for write in writes:
                current = staged[write.path] if write.path in staged else self._documents.get(write.path)
                if write.delete:
                    staged[write.path] = None
                    continue
                if write.must_exist and current is None:
                    raise NotFoundError(
                        f"Document {write.path} does not exist.",
                        detail={"path": write.path},
                    )
                staged[write.path] = apply_write(
                    current,
                    write.data or {},
                    merge=write.merge or write.must_exist,
                    now=now,
                )

            for path, data in staged.items():
                if data is None:
                    self._documents.pop(path, None)
                else:
                    self._documents[path] = data
                self._versions[path] = self._versions.get(path, 0) + 1
            self.commit_count += 1


class InMemoryTransaction:
    """Transaction handle buffering writes until the store commits them."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self.read_versions: Dict[str, int] = {}
        self.pending_writes: List[PendingWrite] = []

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        if self.pending_writes:
            raise TransactionUsageError("Transactions must perform all reads before any writes.")
        path = validate_path(path)
        # Yield like a network round-trip so concurrent transactions interleave.
        await asyncio.sleep(0)
        version, data = self._store._snapshot(path)
        self.read_versions.setdefault(path, version)
        if self.read_versions[path] != version:
            raise TransactionConflict(path)
        return data

    async def exists(self, path: str) -> bool:
        return await self.get(path) is not None

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        self.pending_writes.append(PendingWrite(path=validate_path(path), data=data, merge=merge))

    def update(self, path: str, data: Mapping[str, Any]) -> None:
        self.pending_writes.append(PendingWrite(path=validate_path(path), data=data, must_exist=True))

    def delete(self, path: str) -> None:
        self.pending_writes.append(PendingWrite(path=validate_path(path), data=None, delete=True))


class InMemoryWriteBatch:
    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self._writes: List[PendingWrite] = []
        self._committed = False

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> "InMemoryWriteBatch":
        self._writes.append(PendingWrite(path=validate_path(path), data=data, merge=merge))
        return self

    def update(self, path: str, data: Mapping[str, Any]) -> "InMemoryWriteBatch":
        self._writes.append(PendingWrite(path=validate_path(path), data=data, must_exist=True))
        return self

    def delete(self, path: str) -> "InMemoryWriteBatch":
        self._writes.append(PendingWrite(path=validate_path(path), data=None, delete=True))
        return self

    async def commit(self) -> None:
        if self._committed:
            raise RuntimeError("Write batch has already been committed")
        self._store._commit({}, self._writes)
        self._committed = True


__all__ = ["InMemoryDocumentStore", "InMemoryTransaction", "InMemoryWriteBatch"]
