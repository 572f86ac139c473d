"""Protocols describing the atomic operations the ledger needs from a store."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, TypeVar

T = TypeVar("T")


class TransactionConflict(Exception):
    """Internal signal that a transaction lost a race and must be re-run."""


class TransactionUsageError(RuntimeError):
    """Raised when a transaction function reads after it has started writing."""


class Transaction(Protocol):
    """Read-modify-write view of the store inside one atomic unit."""

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        ...

    async def exists(self, path: str) -> bool:
        ...

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        ...

    def update(self, path: str, data: Mapping[str, Any]) -> None:
        ...

    def delete(self, path: str) -> None:
        ...


class WriteBatch(Protocol):
    """Multi-document write set committed all-or-nothing."""

    def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> "WriteBatch":
        ...

    def update(self, path: str, data: Mapping[str, Any]) -> "WriteBatch":
        ...

    def delete(self, path: str) -> "WriteBatch":
        ...

    async def commit(self) -> None:
        ...


class DocumentStore(Protocol):
    """Document store offering increment, set-merge and transactional updates."""

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        ...

    async def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        ...

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``fn`` atomically, re-running it on write conflicts."""

    def batch(self) -> WriteBatch:
        ...


__all__ = [
    "DocumentStore",
    "Transaction",
    "TransactionConflict",
    "TransactionUsageError",
    "WriteBatch",
]
