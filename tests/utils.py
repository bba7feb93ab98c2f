import hashlib
import hmac
import itertools
import json
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header for the given body."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def make_event(event_type: str, invoice_id=None, event_id: str = "evt_1", **obj) -> dict:
    data_object = dict(obj)
    if invoice_id is not None:
        data_object["metadata"] = {"invoiceId": str(invoice_id)}
    return {"id": event_id, "type": event_type, "data": {"object": data_object}}


def encode_event(event: dict) -> bytes:
    return json.dumps(event).encode()


def line_items(*pairs):
    """[(quantity, unit_price), ...] -> item dicts."""
    return [
        {"description": f"Item {i + 1}", "quantity": quantity, "unit_price": unit_price}
        for i, (quantity, unit_price) in enumerate(pairs)
    ]


class FakeStripe:
    """
    Stand-in for ``stripe.StripeClient``.

    ``calls`` records ``(operation, params, options, api_key)`` in order; ``failures``
    maps an operation name to the exception it should raise.
    """

    def __init__(self):
        self.calls = []
        self.failures = {}
        self.clients = []
        self._counter = itertools.count(1)

    def __call__(self, api_key, **kwargs):
        self.clients.append((api_key, kwargs))
        client = MagicMock(name="StripeClient")
        client.v1.prices.create.side_effect = self._handler("prices.create", api_key)
        client.v1.payment_links.create.side_effect = self._handler("payment_links.create", api_key)
        client.v1.payment_links.update.side_effect = self._handler("payment_links.update", api_key)
        return client

    def operations(self):
        return [operation for operation, _, _, _ in self.calls]

    def _handler(self, operation, api_key):
        def handle(*args, params=None, options=None):
            params = dict(params or {})
            if args:
                params["id"] = args[0]
            self.calls.append((operation, params, dict(options or {}), api_key))
            if operation in self.failures:
                raise self.failures[operation]
            if operation == "prices.create":
                return SimpleNamespace(id=f"price_{next(self._counter)}")
            if operation == "payment_links.create":
                n = next(self._counter)
                return SimpleNamespace(id=f"plink_{n}", url=f"https://buy.stripe.com/test_{n}")
            return SimpleNamespace(id=params["id"], active=params.get("active"))
        return handle
