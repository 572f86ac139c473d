from __future__ import annotations

import hashlib
import hmac
import json
import sys
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.app.services.billing import StripeWebhookVerifier, WebhookSignatureError

SECRET = "whsec_test_secret"


def _sign(payload: str, secret: str = SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def _payload() -> str:
    return json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_1", "status": "past_due"}},
        }
    )


def test_valid_signature_yields_event() -> None:
    payload = _payload()

    event = StripeWebhookVerifier(SECRET).verify(payload.encode("utf-8"), _sign(payload))

    assert event.event_id == "evt_1"
    assert event.event_type == "customer.subscription.updated"
    assert event.payload == {"id": "sub_1", "status": "past_due"}


def test_wrong_secret_is_rejected() -> None:
    payload = _payload()

    with pytest.raises(WebhookSignatureError) as exc:
        StripeWebhookVerifier(SECRET).verify(payload, _sign(payload, secret="whsec_other"))

    assert exc.value.to_http_exception().status_code == 400


def test_missing_signature_or_secret_is_rejected() -> None:
    payload = _payload()

    with pytest.raises(WebhookSignatureError):
        StripeWebhookVerifier(SECRET).verify(payload, None)
    with pytest.raises(WebhookSignatureError):
        StripeWebhookVerifier(None).verify(payload, _sign(payload))
