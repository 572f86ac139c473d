"""Runtime configuration for the ledger services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
import os


@dataclass(frozen=True)
class LedgerConfig:
    """Configuration for storage, billing and gateway behaviour."""

    store_backend: str
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    db_connect_timeout: float
    db_pool_size: int
    txn_max_attempts: int
    invoice_tax_rate_percent: float
    invoice_currency: str
    jwt_secret_key: str
    jwt_algorithm: str
    jwt_exp_minutes: int
    session_cookie_name: str
    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    app_base_url: str
    rate_limit_per_minute: int
    rate_limit_per_hour: int
    rate_limit_global_per_minute: int
    rate_limit_global_per_hour: int
    rate_limit_max_keys: int

    def db_dsn_kwargs(self) -> Dict[str, Any]:
        return {
            "host": self.db_host,
            "port": self.db_port,
            "database": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_ledger_config(env: Optional[Mapping[str, str]] = None) -> LedgerConfig:
    """Load :class:`LedgerConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    store_backend = (env_mapping.get("LEDGER_STORE") or "memory").strip().lower() or "memory"
    if store_backend not in {"memory", "postgres"}:
        raise ValueError(f"Unsupported LEDGER_STORE {store_backend!r}")

    connect_timeout = _to_float(env_mapping.get("DB_CONNECT_TIMEOUT"), default=5.0)
    if connect_timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")

    tax_rate = _to_float(env_mapping.get("INVOICE_TAX_RATE_PERCENT"), default=0.0)
    if tax_rate < 0:
        raise ValueError("INVOICE_TAX_RATE_PERCENT must be non-negative")

    return LedgerConfig(
        store_backend=store_backend,
        db_host=env_mapping.get("DB_HOST", "127.0.0.1"),
        db_port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        db_name=env_mapping.get("DB_NAME", "room_ledger"),
        db_user=env_mapping.get("DB_USER", "ledger_user"),
        db_password=env_mapping.get("DB_PASSWORD", "ledger_pass"),
        db_connect_timeout=connect_timeout,
        db_pool_size=max(1, _to_int(env_mapping.get("DB_POOL_SIZE"), default=5)),
        txn_max_attempts=max(1, _to_int(env_mapping.get("LEDGER_TXN_MAX_ATTEMPTS"), default=5)),
        invoice_tax_rate_percent=tax_rate,
        invoice_currency=(env_mapping.get("INVOICE_CURRENCY") or "USD").strip().upper(),
        jwt_secret_key=env_mapping.get("JWT_SECRET_KEY", "dev-secret-change-me"),
        jwt_algorithm="HS256",
        jwt_exp_minutes=max(1, _to_int(env_mapping.get("JWT_EXP_MINUTES"), default=60)),
        session_cookie_name=env_mapping.get("SESSION_COOKIE_NAME", "session"),
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        app_base_url=env_mapping.get("APP_BASE_URL", "http://localhost:5173").rstrip("/"),
        rate_limit_per_minute=max(1, _to_int(env_mapping.get("RATE_LIMIT_PER_MINUTE"), default=30)),
        rate_limit_per_hour=max(1, _to_int(env_mapping.get("RATE_LIMIT_PER_HOUR"), default=300)),
        rate_limit_global_per_minute=max(
            1, _to_int(env_mapping.get("RATE_LIMIT_GLOBAL_PER_MINUTE"), default=120)
        ),
        rate_limit_global_per_hour=max(
            1, _to_int(env_mapping.get("RATE_LIMIT_GLOBAL_PER_HOUR"), default=1000)
        ),
        rate_limit_max_keys=max(1, _to_int(env_mapping.get("RATE_LIMIT_MAX_KEYS"), default=10_000)),
    )
