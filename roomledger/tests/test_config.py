from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.config import load_ledger_config


def test_defaults() -> None:
    config = load_ledger_config({})

    assert config.store_backend == "memory"
    assert config.txn_max_attempts == 5
    assert config.invoice_currency == "USD"
    assert config.stripe_secret_key is None
    assert config.rate_limit_per_minute == 30
    assert config.session_cookie_name == "session"
    assert config.jwt_exp_minutes == 60
    assert config.db_dsn_kwargs()["database"] == "room_ledger"


def test_overrides() -> None:
    config = load_ledger_config(
        {
            "LEDGER_STORE": "Postgres",
            "DB_PORT": "6543",
            "LEDGER_TXN_MAX_ATTEMPTS": "0",
            "INVOICE_CURRENCY": "eur",
            "INVOICE_TAX_RATE_PERCENT": "7.5",
            "APP_BASE_URL": "https://rooms.example/",
            "SESSION_COOKIE_NAME": "room_session",
            "JWT_EXP_MINUTES": "15",
        }
    )

    assert config.store_backend == "postgres"
    assert config.db_port == 6543
    assert config.txn_max_attempts == 1
    assert config.invoice_currency == "EUR"
    assert config.invoice_tax_rate_percent == 7.5
    assert config.app_base_url == "https://rooms.example"
    assert config.session_cookie_name == "room_session"
    assert config.jwt_exp_minutes == 15


@pytest.mark.parametrize(
    "env",
    [
        {"LEDGER_STORE": "redis"},
        {"DB_PORT": "five"},
        {"DB_CONNECT_TIMEOUT": "-1"},
        {"INVOICE_TAX_RATE_PERCENT": "-3"},
    ],
)
def test_invalid_values_raise(env) -> None:
    with pytest.raises(ValueError):
        load_ledger_config(env)
