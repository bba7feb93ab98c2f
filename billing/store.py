"""
Ledger Store

Durable record of customers, invoices, invoice items and per-user settings.
Reads return None for missing rows; deciding what a missing row means is left
to the caller. Multi-row writes run in a single transaction.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from .models import Customer, Invoice, InvoiceItem, UserSettings

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("name", "email", "address", "phone")
INVOICE_FIELDS = (
    "amount",
    "status",
    "due_date",
    "payment_method",
    "check_number",
    "check_received_date",
    "customer_id",
)
SETTINGS_FIELDS = (
    "company_name",
    "company_address",
    "company_email",
    "stripe_secret_key",
    "stripe_public_key",
    "stripe_webhook_secret",
    "sendgrid_api_key",
    "sendgrid_from_email",
    "reset_link_url",
    "tax_rate",
)


class LedgerStore:
    # ---------------------------------------------------------------------
    # CUSTOMERS
    # ---------------------------------------------------------------------

    @staticmethod
    def create_customer(user, data: Dict[str, Any]) -> Customer:
        return Customer.objects.create(user=user, **{k: v for k, v in data.items() if k in CUSTOMER_FIELDS})

    @staticmethod
    def get_customer(customer_id: int) -> Optional[Customer]:
        return Customer.objects.filter(pk=customer_id).first()

    @staticmethod
    def list_customers(user) -> QuerySet:
        return Customer.objects.filter(user=user)

    @staticmethod
    def update_customer(customer_id: int, data: Dict[str, Any]) -> Optional[Customer]:
        customer = Customer.objects.filter(pk=customer_id).first()
        if customer is None:
            return None
        changed = [k for k in data if k in CUSTOMER_FIELDS]
        for key in changed:
            setattr(customer, key, data[key])
        if changed:
            customer.save(update_fields=changed)
        return customer

    @staticmethod
    def delete_customer(customer_id: int) -> bool:
        deleted, _ = Customer.objects.filter(pk=customer_id).delete()
        return deleted > 0

    # ---------------------------------------------------------------------
    # INVOICES
    # ---------------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def create_invoice(*, user, customer: Customer, number: str, items: Iterable[Dict[str, Any]], **fields) -> Invoice:
        invoice = Invoice.objects.create(
            user=user,
            customer=customer,
            number=number,
            **{k: v for k, v in fields.items() if k in INVOICE_FIELDS},
        )
        InvoiceItem.objects.bulk_create(_build_items(invoice, items))
        return invoice

    @staticmethod
    def get_invoice(invoice_id: int) -> Optional[Invoice]:
        return Invoice.objects.filter(pk=invoice_id).first()

    @staticmethod
    def get_invoice_by_payment_link(link_id: str) -> Optional[Invoice]:
        if not link_id:
            return None
        return Invoice.objects.filter(payment_link_id=link_id).first()

    @staticmethod
    def list_invoices(user) -> QuerySet:
        return Invoice.objects.filter(user=user).prefetch_related("items")

    @staticmethod
    def get_invoice_items(invoice_id: int) -> List[InvoiceItem]:
        return list(InvoiceItem.objects.filter(invoice_id=invoice_id))

    @staticmethod
    @transaction.atomic
    def update_invoice(
        invoice_id: int,
        data: Dict[str, Any],
        items: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> Optional[Invoice]:
        """
        Apply field changes and, when given, the replacement line items in one
        transaction under a row lock, so stored items and amount never disagree.
        """
        invoice = Invoice.objects.select_for_update().filter(pk=invoice_id).first()
        if invoice is None:
            return None
        if items is not None:
            InvoiceItem.objects.filter(invoice=invoice).delete()
            InvoiceItem.objects.bulk_create(_build_items(invoice, items))
        changed = [k for k in data if k in INVOICE_FIELDS]
        for key in changed:
            setattr(invoice, key, data[key])
        if changed:
            invoice.save(update_fields=changed)
        return invoice

    @staticmethod
    @transaction.atomic
    def replace_invoice_items(invoice_id: int, items: Iterable[Dict[str, Any]]) -> List[InvoiceItem]:
        invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
        InvoiceItem.objects.filter(invoice=invoice).delete()
        return InvoiceItem.objects.bulk_create(_build_items(invoice, items))

    @staticmethod
    def update_invoice_status(invoice_id: int, status: str, receipt_url: Optional[str] = None) -> Optional[Invoice]:
        invoice = Invoice.objects.filter(pk=invoice_id).first()
        if invoice is None:
            return None
        invoice.status = status
        update_fields = ["status"]
        if receipt_url:
            invoice.receipt_url = receipt_url
            update_fields.append("receipt_url")
        invoice.save(update_fields=update_fields)
        return invoice

    @staticmethod
    def update_invoice_payment_link(invoice_id: int, link_id: str, link_url: str) -> Optional[Invoice]:
        invoice = Invoice.objects.filter(pk=invoice_id).first()
        if invoice is None:
            return None
        invoice.payment_link_id = link_id or ""
        invoice.payment_link_url = link_url or ""
        update_fields = ["payment_link_id", "payment_link_url"]
        if invoice.payment_link_id and invoice.payment_link_cancelled_at is not None:
            invoice.payment_link_cancelled_at = None
            update_fields.append("payment_link_cancelled_at")
        invoice.save(update_fields=update_fields)
        return invoice

    @staticmethod
    def cancel_invoice_payment_link(invoice_id: int) -> Optional[Invoice]:
        """Clear the link and record that its removal was deliberate."""
        invoice = Invoice.objects.filter(pk=invoice_id).first()
        if invoice is None:
            return None
        invoice.payment_link_id = ""
        invoice.payment_link_url = ""
        invoice.payment_link_cancelled_at = timezone.now()
        invoice.save(update_fields=["payment_link_id", "payment_link_url", "payment_link_cancelled_at"])
        return invoice

    @staticmethod
    @transaction.atomic
    def delete_invoice(invoice_id: int) -> bool:
        InvoiceItem.objects.filter(invoice_id=invoice_id).delete()
        deleted, _ = Invoice.objects.filter(pk=invoice_id).delete()
        return deleted > 0

    # ---------------------------------------------------------------------
    # SETTINGS
    # ---------------------------------------------------------------------

    @staticmethod
    def get_settings_by_user_id(user_id: int) -> Optional[UserSettings]:
        return UserSettings.objects.filter(user_id=user_id).first()

    @staticmethod
    @transaction.atomic
    def upsert_settings(user_id: int, data: Dict[str, Any]) -> UserSettings:
        """Merge the given fields into the user's settings; fields not supplied keep their values."""
        user_settings, created = UserSettings.objects.select_for_update().get_or_create(user_id=user_id)
        changed = [k for k in data if k in SETTINGS_FIELDS]
        for key in changed:
            setattr(user_settings, key, data[key])
        if changed:
            user_settings.save(update_fields=changed + ["updated_at"])
        if created:
            logger.info(f"Settings created for user {user_id}")
        return user_settings


def _build_items(invoice: Invoice, items: Iterable[Dict[str, Any]]) -> List[InvoiceItem]:
    return [
        InvoiceItem(
            invoice=invoice,
            description=item["description"],
            quantity=item["quantity"],
            unit_price=item["unit_price"],
        )
        for item in items
    ]
