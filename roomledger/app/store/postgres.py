"""PostgreSQL document store backed by a JSONB table and SERIALIZABLE transactions."""
from __future__ import annotations

import asyncio
import json
import logging
import random
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

import asyncpg

from ...config import LedgerConfig
from ..errors import LedgerUnavailableError, NotFoundError
from .base import Transaction, TransactionConflict, TransactionUsageError
from .documents import PendingWrite, apply_write, validate_path

T = TypeVar("T")

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS ledger_documents (
        path TEXT PRIMARY KEY,
        data JSONB NOT NULL,
        version BIGINT NOT NULL DEFAULT 1,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
"""

SELECT_SQL = "SELECT data FROM ledger_documents WHERE path = $1"

UPSERT_SQL = """
    INSERT INTO ledger_documents (path, data, version, updated_at)
    VALUES ($1, $2::jsonb, 1, NOW())
    ON CONFLICT (path) DO UPDATE SET
        data = EXCLUDED.data,
        version = ledger_documents.version + 1,
        updated_at = NOW()
"""

DELETE_SQL = "DELETE FROM ledger_documents WHERE path = $1"

_RETRYABLE_ERRORS = (
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.UniqueViolationError,
)


def _decode(raw: Any) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    if isinstance(raw, (bytes, str)):
        return json.loads(raw)
    return dict(raw)


async def create_document_store_pool(config: LedgerConfig) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        min_size=1,
        max_size=config.db_pool_size,
        command_timeout=10,
        timeout=config.db_connect_timeout,
        **config.db_dsn_kwargs(),
    )


async def _apply_writes(
    connection: asyncpg.Connection,
    writes: List[PendingWrite],
    cache: Dict[str, Optional[Dict[str, Any]]],
    now: datetime,
) -> None:
    for write in writes:
        if write.delete:
            await connection.execute(DELETE_SQL, write.path)
            cache[write.path] = None
            continue
        if write.path in cache:
            current = cache[write.path]
        else:
            current = _decode(await connection.fetchval(SELECT_SQL + " FOR UPDATE", write.path))
        if write.must_exist and current is None:
            raise NotFoundError(f"Document {write.path} does not exist.", detail={"path": write.path})
        document = apply_write(current, write.data or {}, merge=write.merge or write.must_exist, now=now)
        await connection.execute(UPSERT_SQL, write.path, json.dumps(document))
        cache[write.path] = document


class PostgresDocumentStore:
    """Document store persisting JSON documents in PostgreSQL.

    Transactions run at SERIALIZABLE isolation; PostgreSQL aborts whichever
    side of a read/write race commits second, and the transaction function is
    re-run from scratch up to ``max_attempts`` times.
    """

    def __init__(self, pool: asyncpg.Pool, *, max_attempts: int = 5, backoff_seconds: float = 0.02) -> None:
        self._pool = pool
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = max(backoff_seconds, 0.0)

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(SCHEMA_SQL)

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        async with self._pool.acquire() as connection:
            return _decode(await connection.fetchval(SELECT_SQL, validate_path(path)))

    async def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        await self.batch().set(path, data, merge=merge).commit()

    def batch(self) -> "PostgresWriteBatch":
        return PostgresWriteBatch(self)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._pool.acquire() as connection:
                    async with connection.transaction(isolation="serializable"):
                        transaction = PostgresTransaction(connection)
                        result = await fn(transaction)
                        await _apply_writes(
                            connection,
                            transaction.pending_writes,
                            transaction.read_cache,
                            datetime.now(timezone.utc),
                        )
                return result
            except (TransactionConflict, *_RETRYABLE_ERRORS) as exc:
                if attempt >= self._max_attempts:
                    logger.warning("Transaction abandoned after %s attempts: %s", attempt, exc)
                    raise LedgerUnavailableError(
                        "Transaction could not be committed; retry with the same request.",
                        detail={"attempts": attempt},
                    ) from exc
                logger.debug("Retrying transaction after %s (attempt %s)", type(exc).__name__, attempt)
                await asyncio.sleep(random.uniform(0, self._backoff_seconds * attempt))
            except (OSError, asyncpg.exceptions.PostgresConnectionError) as exc:
                raise LedgerUnavailableError("Document store is unreachable.") from exc

    async def _commit_writes(self, writes: List[PendingWrite]) -> None:
        try:
            async with self._pool.acquire() as connection:
                async with connection.transaction():
                    await _apply_writes(connection, writes, {}, datetime.now(timezone.utc))
        except (OSError, asyncpg.exceptions.PostgresConnectionError) as exc:
            raise LedgerUnavailableError("Document store is unreachable.") from exc


class PostgresTransaction:
    def __init__(self, connection: asyncpg.Connection) -> None:
        self._connection = connection
        self.read_cache: Dict[str, Optional[Dict[str, Any]]] = {}
        self.pending_writes: List[PendingWrite] = []

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        if self.pending_writes:
            raise TransactionUsageError("Transactions must perform all reads before any writes.")
        path = validate_path(path)
        document = _decode(await self._connection.fetchval(SELECT_SQL, path))
        self.read_cache[path] = document
        return document

    async def exists(self, path: str) -> bool:
        return await self.get(path) is not None

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        self.pending_writes.append(PendingWrite(path=validate_path(path), data=data, merge=merge))

    def update(self, path: str, data: Mapping[str, Any]) -> None:
        self.pending_writes.append(PendingWrite(path=validate_path(path), data=data, must_exist=True))

    def delete(self, path: str) -> None:
        self.pending_writes.append(PendingWrite(path=validate_path(path), data=None, delete=True))


class PostgresWriteBatch:
    def __init__(self, store: PostgresDocumentStore) -> None:
        self._store = store
        self._writes: List[PendingWrite] = []

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> "PostgresWriteBatch":
        self._writes.append(PendingWrite(path=validate_path(path), data=data, merge=merge))
        return self

    def update(self, path: str, data: Mapping[str, Any]) -> "PostgresWriteBatch":
        self._writes.append(PendingWrite(path=validate_path(path), data=data, must_exist=True))
        return self

    def delete(self, path: str) -> "PostgresWriteBatch":
        self._writes.append(PendingWrite(path=validate_path(path), data=None, delete=True))
        return self

    async def commit(self) -> None:
        await self._store._commit_writes(self._writes)


__all__ = [
    "PostgresDocumentStore",
    "PostgresTransaction",
    "PostgresWriteBatch",
    "SCHEMA_SQL",
    "create_document_store_pool",
]
