"""Helpers shared by the API routers."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from ..errors import LedgerError
from ..feature_gates import RateLimiter


@contextmanager
def ledger_errors() -> Iterator[None]:
    """Translate domain failures raised inside the block into HTTP errors."""

    try:
        yield
    except LedgerError as exc:
        raise exc.to_http_exception() from exc


def enforce_rate_limit(limiter: RateLimiter, scope: str, caller: str) -> None:
    with ledger_errors():
        limiter.check(scope, caller)


__all__ = ["enforce_rate_limit", "ledger_errors"]
