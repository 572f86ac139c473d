"""Application wiring for the ledger services."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from ...config import LedgerConfig, load_ledger_config
from ..awards import AwardLedger, RoomDirectory
from ..entitlements import EntitlementService
from ..errors import LedgerUnavailableError
from ..feature_gates import InMemoryCounterCache, RateLimiter, default_windows
from ..metering import UsageMeterLedger
from ..organizations import OrganizationService
from ..billing import SubscriptionSynchronizer
from ..store import DocumentStore, InMemoryDocumentStore

logger = logging.getLogger("ledger")

_document_store: Optional[DocumentStore] = None


@lru_cache(maxsize=1)
def get_ledger_config() -> LedgerConfig:
    return load_ledger_config()


def set_document_store(store: Optional[DocumentStore]) -> None:
    """Install the store every service uses and drop services bound to the old one."""

    global _document_store
    _document_store = store
    for getter in (
        get_entitlement_service,
        get_usage_ledger,
        get_award_ledger,
        get_room_directory,
        get_organization_service,
        get_subscription_synchronizer,
    ):
        getter.cache_clear()


def get_document_store() -> DocumentStore:
    global _document_store
    if _document_store is None:
        config = get_ledger_config()
        if config.store_backend != "memory":
            raise LedgerUnavailableError("Document store has not been initialized.")
        logger.info("Using in-memory document store")
        _document_store = InMemoryDocumentStore(max_attempts=config.txn_max_attempts)
    return _document_store


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    return EntitlementService(get_document_store())


@lru_cache(maxsize=1)
def get_usage_ledger() -> UsageMeterLedger:
    return UsageMeterLedger(get_document_store())


@lru_cache(maxsize=1)
def get_award_ledger() -> AwardLedger:
    return AwardLedger(get_document_store())


@lru_cache(maxsize=1)
def get_room_directory() -> RoomDirectory:
    return RoomDirectory(get_document_store())


@lru_cache(maxsize=1)
def get_organization_service() -> OrganizationService:
    return OrganizationService(store=get_document_store())


@lru_cache(maxsize=1)
def get_subscription_synchronizer() -> SubscriptionSynchronizer:
    return SubscriptionSynchronizer(get_document_store())


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    config = get_ledger_config()
    return RateLimiter(
        InMemoryCounterCache(max_keys=config.rate_limit_max_keys),
        windows=default_windows(config.rate_limit_per_minute, config.rate_limit_per_hour),
        global_windows=default_windows(
            config.rate_limit_global_per_minute,
            config.rate_limit_global_per_hour,
        ),
    )


__all__ = [
    "get_award_ledger",
    "get_document_store",
    "get_entitlement_service",
    "get_ledger_config",
    "get_organization_service",
    "get_rate_limiter",
    "get_room_directory",
    "get_subscription_synchronizer",
    "get_usage_ledger",
    "set_document_store",
]
