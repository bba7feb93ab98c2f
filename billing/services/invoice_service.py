import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from ..config import (
    PlatformDefaults,
    resolve_gateway_credentials,
    resolve_mail_credentials,
)
from ..errors import (
    AuthorizationError,
    ConfigurationError,
    GatewayError,
    NotFoundError,
    NotificationError,
    ValidationError,
)
from ..models import Customer, Invoice, UserSettings
from ..sendgrid_service import DocumentAttachment, SendGridNotificationService
from ..store import LedgerStore
from ..stripe_service import StripeService, to_minor_units
from .pdf_service import PDFService

logger = logging.getLogger(__name__)


@dataclass
class WorkflowResult:
    invoice: Invoice
    warning: Optional[NotificationError] = None


class InvoiceService:
    """
    Invoice lifecycle: create, edit, resend, cancel payment link, delete.

    Steps run strictly in order (invoice and items, payment link, link persisted,
    notification) and commit independently. A failure part way through leaves the
    earlier steps in place; Resend is the recovery path for an invoice without a link.
    Two concurrent Resend calls on one invoice race and the last link written wins.
    """

    # ---------------------------------------------------------------------
    # VALIDATION & CALCULATION
    # ---------------------------------------------------------------------

    @staticmethod
    def generate_invoice_number() -> str:
        number = f"INV-{int(time.time() * 1000)}"
        while Invoice.objects.filter(number=number).exists():
            number = f"INV-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"
        return number

    @staticmethod
    def validate_invoice_data(data: Dict[str, Any], items: Optional[List[Dict[str, Any]]], is_update: bool = False) -> Dict[str, List[str]]:
        errors = {}

        if not is_update:
            if not data.get('customer_id'):
                errors['customer_id'] = ['Customer is required']
            if not data.get('due_date'):
                errors['due_date'] = ['Due date is required']

        payment_method = data.get('payment_method')
        if payment_method is not None and payment_method not in Invoice.PaymentMethod.values:
            errors['payment_method'] = [f"Payment method must be one of: {', '.join(Invoice.PaymentMethod.values)}"]

        if items is None:
            if not is_update:
                errors['items'] = ['At least one line item is required']
            return errors

        if len(items) == 0:
            errors['items'] = ['At least one line item is required']
            return errors

        for i, item in enumerate(items):
            if not str(item.get('description', '')).strip():
                errors[f'items.{i}.description'] = ['Description is required']

            quantity = item.get('quantity')
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                errors[f'items.{i}.quantity'] = ['Quantity must be a whole number greater than 0']

            try:
                unit_price = Decimal(str(item.get('unit_price')))
            except (InvalidOperation, ValueError):
                errors[f'items.{i}.unit_price'] = ['Unit price must be a number']
                continue
            if not unit_price.is_finite() or unit_price < 0:
                errors[f'items.{i}.unit_price'] = ['Unit price cannot be negative']

        return errors

    @staticmethod
    def calculate_amount(items: List[Any]) -> Decimal:
        total = Decimal('0.00')
        for item in items:
            if isinstance(item, dict):
                quantity, unit_price = item['quantity'], item['unit_price']
            else:
                quantity, unit_price = item.quantity, item.unit_price
            total += Decimal(str(quantity)) * Decimal(str(unit_price))
        return total.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    @staticmethod
    def initial_status(payment_method: str, check_received_date: Optional[date]) -> str:
        if payment_method == Invoice.PaymentMethod.CHECK and check_received_date:
            return Invoice.Status.PAID
        return Invoice.Status.PENDING

    # ---------------------------------------------------------------------
    # OWNERSHIP
    # ---------------------------------------------------------------------

    @staticmethod
    def get_owned_invoice(user, invoice_id: int) -> Invoice:
        invoice = LedgerStore.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        if invoice.user_id != user.id:
            logger.warning(f"User {user.id} denied access to invoice {invoice_id}")
            raise AuthorizationError("You do not have access to this invoice")
        return invoice

    @staticmethod
    def get_owned_customer(user, customer_id: int) -> Customer:
        customer = LedgerStore.get_customer(customer_id)
        if customer is None or customer.user_id != user.id:
            raise NotFoundError("Customer not found")
        return customer

    # ---------------------------------------------------------------------
    # CREATE / UPDATE
    # ---------------------------------------------------------------------

    @classmethod
    def create_invoice(
        cls,
        user,
        data: Dict[str, Any],
        items: List[Dict[str, Any]],
        defaults: Optional[PlatformDefaults] = None,
    ) -> WorkflowResult:
        errors = cls.validate_invoice_data(data, items)
        if errors:
            raise ValidationError.from_dict(errors)

        customer = cls.get_owned_customer(user, data['customer_id'])
        payment_method = data.get('payment_method') or Invoice.PaymentMethod.CARD
        amount = cls.calculate_amount(items)
        if payment_method == Invoice.PaymentMethod.CARD and amount <= 0:
            raise ValidationError.from_dict({'items': ['Card invoices must total more than zero']})

        client_amount = data.get('amount')
        if client_amount is not None and Decimal(str(client_amount)) != amount:
            logger.info(f"Client amount {client_amount} replaced by computed amount {amount}")

        check_received_date = data.get('check_received_date')
        invoice = LedgerStore.create_invoice(
            user=user,
            customer=customer,
            number=cls.generate_invoice_number(),
            items=items,
            amount=amount,
            status=cls.initial_status(payment_method, check_received_date),
            due_date=data['due_date'],
            payment_method=payment_method,
            check_number=data.get('check_number') or '',
            check_received_date=check_received_date,
        )
        logger.info(f"Invoice {invoice.id} created by user {user.id}")

        user_settings = LedgerStore.get_settings_by_user_id(user.id)
        defaults = defaults or PlatformDefaults.from_settings()

        if payment_method == Invoice.PaymentMethod.CARD:
            credentials = resolve_gateway_credentials(user_settings, defaults)
            link = StripeService(credentials).create_price_and_link(
                to_minor_units(invoice.amount),
                f"Invoice {invoice.number}",
                {"invoiceId": str(invoice.id)},
                idempotency_key=f"invoice-{invoice.id}-create",
            )
            invoice = LedgerStore.update_invoice_payment_link(invoice.id, link.link_id, link.url)

        warning = cls._notify(invoice, user_settings, defaults)
        return WorkflowResult(invoice=invoice, warning=warning)

    @classmethod
    def update_invoice(
        cls,
        user,
        invoice_id: int,
        data: Dict[str, Any],
        items: Optional[List[Dict[str, Any]]] = None,
    ) -> Invoice:
        invoice = cls.get_owned_invoice(user, invoice_id)

        errors = cls.validate_invoice_data(data, items, is_update=True)
        if errors:
            raise ValidationError.from_dict(errors)

        changes: Dict[str, Any] = {}
        if data.get('customer_id') and data['customer_id'] != invoice.customer_id:
            changes['customer_id'] = cls.get_owned_customer(user, data['customer_id']).id
        for key in ('due_date', 'payment_method'):
            if data.get(key):
                changes[key] = data[key]
        if 'check_number' in data:
            changes['check_number'] = data['check_number'] or ''
        if 'check_received_date' in data:
            changes['check_received_date'] = data['check_received_date']

        if items is not None:
            changes['amount'] = cls.calculate_amount(items)

        payment_method = changes.get('payment_method', invoice.payment_method)
        status = cls.edited_status(
            invoice,
            payment_method,
            changes.get('check_received_date', invoice.check_received_date),
        )
        if status != invoice.status:
            changes['status'] = status

        switched_to_check = (
            payment_method == Invoice.PaymentMethod.CHECK
            and invoice.payment_method != Invoice.PaymentMethod.CHECK
        )
        if switched_to_check and invoice.payment_link_id:
            cls._deactivate_for_user(invoice, user, None)
            LedgerStore.update_invoice_payment_link(invoice.id, "", "")

        invoice = LedgerStore.update_invoice(invoice.id, changes, items=items)
        if 'amount' in changes and invoice.has_payment_link and invoice.status == Invoice.Status.PENDING:
            logger.warning(f"Invoice {invoice.id} amount changed; its payment link is stale until resent")

        logger.info(f"Invoice {invoice.id} updated by user {user.id}")
        return invoice

    @staticmethod
    def edited_status(invoice: Invoice, payment_method: str, check_received_date: Optional[date]) -> str:
        """
        Status after an edit. Only check invoices move here: a received date marks
        them paid, and clearing it reopens one that was paid by check. A card
        invoice switched to check keeps a paid status it already earned.
        """
        if payment_method != Invoice.PaymentMethod.CHECK:
            return invoice.status
        if check_received_date:
            return Invoice.Status.PAID
        if invoice.status == Invoice.Status.PAID and invoice.payment_method != Invoice.PaymentMethod.CHECK:
            return invoice.status
        return Invoice.Status.PENDING

    # ---------------------------------------------------------------------
    # RESEND / CANCEL / DELETE
    # ---------------------------------------------------------------------

    @classmethod
    def resend_invoice(cls, user, invoice_id: int, defaults: Optional[PlatformDefaults] = None) -> WorkflowResult:
        invoice = cls.get_owned_invoice(user, invoice_id)
        user_settings = LedgerStore.get_settings_by_user_id(user.id)
        defaults = defaults or PlatformDefaults.from_settings()

        amount = cls.calculate_amount(LedgerStore.get_invoice_items(invoice.id))
        if amount != invoice.amount:
            invoice = LedgerStore.update_invoice(invoice.id, {'amount': amount})

        if invoice.payment_method == Invoice.PaymentMethod.CARD and invoice.status != Invoice.Status.PAID:
            credentials = resolve_gateway_credentials(user_settings, defaults)
            service = StripeService(credentials)
            if invoice.payment_link_id:
                cls._deactivate_quietly(service, invoice)
            link = service.create_price_and_link(
                to_minor_units(invoice.amount),
                f"Invoice {invoice.number}",
                {"invoiceId": str(invoice.id)},
                idempotency_key=f"invoice-{invoice.id}-resend-{uuid.uuid4().hex}",
            )
            invoice = LedgerStore.update_invoice_payment_link(invoice.id, link.link_id, link.url)

        warning = cls._notify(invoice, user_settings, defaults)
        logger.info(f"Invoice {invoice.id} resent by user {user.id}")
        return WorkflowResult(invoice=invoice, warning=warning)

    @classmethod
    def cancel_payment_link(cls, user, invoice_id: int, defaults: Optional[PlatformDefaults] = None) -> Invoice:
        invoice = cls.get_owned_invoice(user, invoice_id)
        if invoice.payment_link_id:
            cls._deactivate_for_user(invoice, user, defaults)
        invoice = LedgerStore.cancel_invoice_payment_link(invoice.id)
        logger.info(f"Payment link cleared for invoice {invoice.id}")
        return invoice

    @classmethod
    def delete_invoice(cls, user, invoice_id: int, defaults: Optional[PlatformDefaults] = None) -> None:
        invoice = cls.get_owned_invoice(user, invoice_id)
        if invoice.payment_link_id:
            cls._deactivate_for_user(invoice, user, defaults)
        LedgerStore.delete_invoice(invoice.id)
        logger.info(f"Invoice {invoice_id} deleted by user {user.id}")

    # ---------------------------------------------------------------------
    # BEST-EFFORT STEPS
    # ---------------------------------------------------------------------

    @classmethod
    def _deactivate_for_user(cls, invoice: Invoice, user, defaults: Optional[PlatformDefaults]) -> None:
        user_settings = LedgerStore.get_settings_by_user_id(user.id)
        try:
            credentials = resolve_gateway_credentials(user_settings, defaults or PlatformDefaults.from_settings())
        except ConfigurationError as exc:
            logger.warning(f"Cannot deactivate link {invoice.payment_link_id} for invoice {invoice.id}: {exc.message}")
            return
        cls._deactivate_quietly(StripeService(credentials), invoice)

    @staticmethod
    def _deactivate_quietly(service: StripeService, invoice: Invoice) -> None:
        try:
            service.deactivate_link(invoice.payment_link_id)
        except GatewayError as exc:
            logger.warning(f"Failed to deactivate link {invoice.payment_link_id} for invoice {invoice.id}: {exc.message}")

    @staticmethod
    def _render_attachment(invoice: Invoice, user_settings: Optional[UserSettings]) -> Optional[DocumentAttachment]:
        if not PDFService.is_available():
            return None
        try:
            content = PDFService.generate_pdf_bytes(invoice, user_settings)
        except ValueError as exc:
            logger.warning(f"Sending invoice {invoice.id} without document: {exc}")
            return None
        return DocumentAttachment(filename=PDFService.get_invoice_filename(invoice), content=content)

    @classmethod
    def _notify(
        cls,
        invoice: Invoice,
        user_settings: Optional[UserSettings],
        defaults: PlatformDefaults,
    ) -> Optional[NotificationError]:
        try:
            customer = invoice.customer_or_none
            if customer is None:
                raise NotificationError("The invoice's customer no longer exists")
            credentials = resolve_mail_credentials(user_settings, defaults)
            SendGridNotificationService(credentials).send_invoice_notification(
                customer.email,
                invoice.number,
                invoice.amount,
                invoice.due_date,
                payment_url=invoice.payment_link_url or None,
                attachment=cls._render_attachment(invoice, user_settings),
            )
        except NotificationError as exc:
            logger.warning(f"Notification for invoice {invoice.id} failed: {exc.message}")
            return exc
        return None
