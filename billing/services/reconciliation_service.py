"""
Payment event reconciliation.

Applies verified Stripe events to invoice status. Events are correlated to an
invoice only through the `invoiceId` metadata attached when the payment link
was created. Status rules per invoice:

    pending -> paid      on any success kind
    pending -> failed    on a failure kind
    failed  -> paid      a retried charge that later succeeds
    paid    -> paid      receipt url may be refreshed, status never regresses

Each event id is applied at most once; redelivery is acknowledged without effect.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction

from ..errors import ReconciliationError
from ..models import Invoice, ProcessedWebhook
from ..store import LedgerStore

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHARGE_SUCCEEDED = "charge.succeeded"

SUCCESS_EVENTS = frozenset({CHECKOUT_COMPLETED, PAYMENT_SUCCEEDED, CHARGE_SUCCEEDED})
FAILURE_EVENTS = frozenset({PAYMENT_FAILED})


@dataclass
class ReconciliationOutcome:
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNMATCHED = "unmatched"

    result: str
    event_id: str
    invoice_id: Optional[int] = None
    status: Optional[str] = None


class PaymentEventReconciler:
    @staticmethod
    def is_handled(event_type: str) -> bool:
        return event_type in SUCCESS_EVENTS or event_type in FAILURE_EVENTS

    @staticmethod
    def extract_invoice_id(obj: Dict[str, Any]) -> Optional[int]:
        metadata = obj.get("metadata") or {}
        raw = metadata.get("invoiceId")
        if raw in (None, ""):
            return None
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise ReconciliationError(f"Malformed invoiceId in event metadata: {raw!r}") from exc

    @staticmethod
    def extract_receipt_url(obj: Dict[str, Any]) -> Optional[str]:
        if obj.get("receipt_url"):
            return obj["receipt_url"]
        latest_charge = obj.get("latest_charge")
        if isinstance(latest_charge, dict) and latest_charge.get("receipt_url"):
            return latest_charge["receipt_url"]
        charges = (obj.get("charges") or {}).get("data") or []
        for charge in charges:
            if isinstance(charge, dict) and charge.get("receipt_url"):
                return charge["receipt_url"]
        return None

    @classmethod
    def handle_event(
        cls,
        event: Dict[str, Any],
        payload: bytes = b"",
        owner_id: Optional[int] = None,
    ) -> ReconciliationOutcome:
        """
        Apply one verified event. When `owner_id` is given the event was authenticated with that
        tenant's own secret and may only touch that tenant's invoices.
        """
        event_id = str(event.get("id", ""))
        event_type = str(event.get("type", ""))
        if not event_id or not event_type:
            raise ReconciliationError("Event is missing id or type")

        if not cls.is_handled(event_type):
            logger.info(f"Ignoring Stripe event type: {event_type}")
            return ReconciliationOutcome(ReconciliationOutcome.IGNORED, event_id)

        obj = (event.get("data") or {}).get("object")
        if not isinstance(obj, dict):
            raise ReconciliationError("Event has no data object")

        invoice_id = cls.extract_invoice_id(obj)
        receipt_url = cls.extract_receipt_url(obj)
        payload_hash = hashlib.sha256(payload).hexdigest() if payload else ""

        try:
            with transaction.atomic():
                if ProcessedWebhook.objects.filter(event_id=event_id).exists():
                    logger.info(f"Stripe webhook {event_id} already processed. Skipping.")
                    return ReconciliationOutcome(ReconciliationOutcome.DUPLICATE, event_id, invoice_id)

                outcome = cls._apply(event_id, event_type, invoice_id, receipt_url, owner_id)

                ProcessedWebhook.objects.create(
                    event_id=event_id,
                    event_type=event_type,
                    invoice_id=invoice_id,
                    payload_hash=payload_hash,
                )
        except IntegrityError:
            # A concurrent delivery of the same event committed first.
            logger.info(f"Stripe webhook {event_id} processed concurrently. Skipping.")
            return ReconciliationOutcome(ReconciliationOutcome.DUPLICATE, event_id, invoice_id)

        return outcome

    @classmethod
    def _apply(
        cls,
        event_id: str,
        event_type: str,
        invoice_id: Optional[int],
        receipt_url: Optional[str],
        owner_id: Optional[int] = None,
    ) -> ReconciliationOutcome:
        if invoice_id is None:
            logger.warning(f"Stripe event {event_id} ({event_type}) carries no invoiceId; nothing to reconcile")
            return ReconciliationOutcome(ReconciliationOutcome.UNMATCHED, event_id)

        invoice = Invoice.objects.select_for_update().filter(pk=invoice_id).first()
        if invoice is None:
            logger.warning(f"Invoice {invoice_id} not found for Stripe event {event_id}")
            return ReconciliationOutcome(ReconciliationOutcome.UNMATCHED, event_id, invoice_id)
        if owner_id is not None and invoice.user_id != owner_id:
            logger.warning(f"Stripe event {event_id} for invoice {invoice_id} was signed by another tenant")
            return ReconciliationOutcome(ReconciliationOutcome.UNMATCHED, event_id, invoice_id)

        if event_type in SUCCESS_EVENTS:
            if invoice.status != Invoice.Status.PAID:
                LedgerStore.update_invoice_status(invoice.id, Invoice.Status.PAID, receipt_url=receipt_url)
                logger.info(f"Invoice {invoice.id} marked paid ({event_type} {event_id})")
                return ReconciliationOutcome(ReconciliationOutcome.APPLIED, event_id, invoice.id, Invoice.Status.PAID)
            if receipt_url and receipt_url != invoice.receipt_url:
                LedgerStore.update_invoice_status(invoice.id, Invoice.Status.PAID, receipt_url=receipt_url)
                logger.info(f"Receipt url refreshed for paid invoice {invoice.id}")
                return ReconciliationOutcome(ReconciliationOutcome.APPLIED, event_id, invoice.id, Invoice.Status.PAID)
            return ReconciliationOutcome(ReconciliationOutcome.UNCHANGED, event_id, invoice.id, invoice.status)

        if invoice.status == Invoice.Status.PAID:
            logger.info(f"Ignoring {event_type} for already paid invoice {invoice.id}")
            return ReconciliationOutcome(ReconciliationOutcome.UNCHANGED, event_id, invoice.id, invoice.status)
        if invoice.status == Invoice.Status.FAILED:
            return ReconciliationOutcome(ReconciliationOutcome.UNCHANGED, event_id, invoice.id, invoice.status)

        LedgerStore.update_invoice_status(invoice.id, Invoice.Status.FAILED)
        logger.info(f"Invoice {invoice.id} marked failed ({event_type} {event_id})")
        return ReconciliationOutcome(ReconciliationOutcome.APPLIED, event_id, invoice.id, Invoice.Status.FAILED)
