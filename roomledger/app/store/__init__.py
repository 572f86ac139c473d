"""Document store abstraction: atomic increment, set-merge and transactions."""

from .base import DocumentStore, Transaction, TransactionConflict, TransactionUsageError, WriteBatch
from .documents import SERVER_TIMESTAMP, ArrayUnion, Increment, apply_write, document_path
from .memory import InMemoryDocumentStore

__all__ = [
    "ArrayUnion",
    "DocumentStore",
    "InMemoryDocumentStore",
    "Increment",
    "SERVER_TIMESTAMP",
    "Transaction",
    "TransactionConflict",
    "TransactionUsageError",
    "WriteBatch",
    "apply_write",
    "document_path",
]
