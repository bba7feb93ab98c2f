"""
Stripe Payment Link Service
Stateless: one instance per operation, built from explicitly resolved credentials.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import stripe
from django.conf import settings

from .config import GatewayCredentials
from .errors import GatewayError, ReconciliationError

logger = logging.getLogger(__name__)

# The SDK attaches an idempotency key to every POST it retries, so repeated
# attempts never mint a second price or link.
MAX_NETWORK_RETRIES = 2
DEFAULT_STRIPE_API_BASE = "https://api.stripe.com"


@dataclass(frozen=True)
class PaymentLink:
    link_id: str
    url: str


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeService:
    def __init__(
        self,
        credentials: GatewayCredentials,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        currency: Optional[str] = None,
    ):
        self.secret_key = credentials.secret_key
        self.base_url = (base_url or getattr(settings, "STRIPE_API_BASE", DEFAULT_STRIPE_API_BASE)).rstrip("/")
        self.timeout = timeout or getattr(settings, "STRIPE_TIMEOUT", 30)
        self.currency = (currency or getattr(settings, "INVOICE_CURRENCY", "usd")).lower()

    @property
    def client(self) -> stripe.StripeClient:
        return stripe.StripeClient(
            self.secret_key,
            base_addresses={"api": self.base_url},
            max_network_retries=MAX_NETWORK_RETRIES,
            http_client=stripe.RequestsClient(timeout=self.timeout),
        )

    @staticmethod
    def _options(idempotency_key: Optional[str]) -> Dict[str, Any]:
        return {"idempotency_key": idempotency_key} if idempotency_key else {}

    @staticmethod
    def _gateway_error(action: str, exc: stripe.StripeError) -> GatewayError:
        message = exc.user_message or str(exc) or "Request failed"
        logger.error(f"Stripe {action} failed: {type(exc).__name__}: {message}")
        return GatewayError(f"Stripe error: {message}", provider_status=exc.http_status)

    # ---------------------------------------------------------------------
    # PAYMENT LINKS
    # ---------------------------------------------------------------------

    def create_price_and_link(
        self,
        amount_minor_units: int,
        description: str,
        metadata: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> PaymentLink:
        if amount_minor_units <= 0:
            raise GatewayError("Payment link amount must be greater than zero")

        client = self.client
        try:
            price = client.v1.prices.create(
                params={
                    "currency": self.currency,
                    "unit_amount": amount_minor_units,
                    "product_data": {"name": description},
                },
                options=self._options(f"{idempotency_key}-price" if idempotency_key else None),
            )
            link = client.v1.payment_links.create(
                params={
                    "line_items": [{"price": price.id, "quantity": 1}],
                    "metadata": metadata,
                    "payment_intent_data": {"metadata": metadata},
                },
                options=self._options(f"{idempotency_key}-link" if idempotency_key else None),
            )
        except stripe.StripeError as exc:
            raise self._gateway_error("payment link creation", exc) from exc

        link_id, url = getattr(link, "id", None), getattr(link, "url", None)
        if not link_id or not url:
            raise GatewayError("Stripe returned a payment link without id or url")

        logger.info(f"Payment link {link_id} created for {amount_minor_units} {self.currency}")
        return PaymentLink(link_id=link_id, url=url)

    def deactivate_link(self, link_id: str) -> None:
        try:
            self.client.v1.payment_links.update(link_id, params={"active": False})
        except stripe.StripeError as exc:
            raise self._gateway_error(f"deactivation of {link_id}", exc) from exc
        logger.info(f"Payment link {link_id} deactivated")


# -------------------------------------------------------------------------
# WEBHOOK SECURITY
# -------------------------------------------------------------------------

def construct_event(
    payload: bytes,
    signature_header: str,
    secret: str,
    *,
    tolerance: Optional[int] = None,
) -> dict[str, Any]:
    """
    Verify a Stripe-Signature header against the raw request body and return the decoded event.

    Raises:
        ReconciliationError: on a missing secret, a bad or stale signature, or a malformed payload.
    """
    if not secret:
        raise ReconciliationError("Webhook secret is not configured")
    if not signature_header:
        raise ReconciliationError("Missing Stripe-Signature header")
    if tolerance is None:
        tolerance = getattr(settings, "STRIPE_WEBHOOK_TOLERANCE", 300)

    try:
        stripe.Webhook.construct_event(payload, signature_header, secret, tolerance=tolerance)
        event = json.loads(payload)
    except stripe.SignatureVerificationError as exc:
        raise ReconciliationError(f"Invalid webhook signature: {exc.user_message or exc}") from exc
    except ValueError as exc:
        raise ReconciliationError("Invalid webhook payload JSON") from exc

    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise ReconciliationError("Webhook payload is missing id or type")
    return event
