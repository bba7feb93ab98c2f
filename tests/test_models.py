"""
Model tests for invoices, line items, settings and processed webhooks.
"""
from decimal import Decimal

import pytest
from django.db import IntegrityError

from billing.models import Invoice, ProcessedWebhook
from tests.factories import make_invoice, make_item


@pytest.mark.django_db
class TestInvoiceModel:
    def test_defaults(self, user):
        invoice = make_invoice(user=user)
        assert invoice.status == Invoice.Status.PENDING
        assert invoice.payment_method == Invoice.PaymentMethod.CARD
        assert invoice.has_payment_link is False
        assert str(invoice) == f"{invoice.number} (pending)"

    def test_number_is_unique(self, user):
        make_invoice(user=user, number="INV-1")
        with pytest.raises(IntegrityError):
            make_invoice(user=user, number="INV-1")

    def test_customer_or_none(self, user):
        invoice = make_invoice(user=user)
        assert invoice.customer_or_none == invoice.customer

    def test_newest_first(self, user):
        first = make_invoice(user=user)
        second = make_invoice(user=user)
        assert list(Invoice.objects.filter(user=user)) == [second, first]


@pytest.mark.django_db
class TestInvoiceItemModel:
    def test_total(self):
        item = make_item(quantity=3, unit_price=Decimal("19.99"))
        assert item.total == Decimal("59.97")


@pytest.mark.django_db
class TestUserSettingsModel:
    def test_created_with_user(self, user):
        assert user.billing_settings.stripe_secret_key == ""
        assert user.billing_settings.tax_rate == Decimal("0.00")


@pytest.mark.django_db
class TestProcessedWebhookModel:
    def test_event_id_is_unique(self):
        ProcessedWebhook.objects.create(event_id="evt_1", event_type="charge.succeeded")
        with pytest.raises(IntegrityError):
            ProcessedWebhook.objects.create(event_id="evt_1", event_type="charge.succeeded")
