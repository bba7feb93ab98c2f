from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import stripe

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from billing.models import Customer, Invoice, InvoiceItem
from billing.store import LedgerStore
from tests.utils import FakeStripe

User = get_user_model()


@override_settings(
    STRIPE_SECRET_KEY="sk_test_platform",
    SENDGRID_API_KEY="SG.platform",
    SENDGRID_FROM_EMAIL="noreply@example.com",
)
class InvoiceAPITest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", email="owner@example.com", password="TestPass123!")
        self.other = User.objects.create_user(username="other", email="other@example.com", password="TestPass123!")
        self.customer = LedgerStore.create_customer(
            self.user, {"name": "Acme", "email": "ap@acme.example.com", "address": "1 Road"},
        )
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

        self.stripe = FakeStripe()
        patches = [
            patch("billing.stripe_service.stripe.StripeClient", side_effect=self.stripe),
            patch("billing.sendgrid_service.SendGridAPIClient"),
            patch("billing.services.invoice_service.PDFService.is_available", return_value=False),
        ]
        _, sendgrid_cls, _ = [p.start() for p in patches]
        for p in patches:
            self.addCleanup(p.stop)
        self.sendgrid = sendgrid_cls.return_value
        self.sendgrid.send.return_value = MagicMock(status_code=202)

    def payload(self, **overrides):
        data = {
            "customer_id": self.customer.id,
            "due_date": (date.today() + timedelta(days=30)).isoformat(),
            "items": [
                {"description": "Design", "quantity": 2, "unit_price": "100.00"},
                {"description": "Hosting", "quantity": 1, "unit_price": "15.50"},
            ],
        }
        data.update(overrides)
        return data

    def make_invoice(self, user=None, payment_link_id="", payment_link_url=""):
        user = user or self.user
        customer = self.customer if user == self.user else LedgerStore.create_customer(
            user, {"name": "Other", "email": "x@example.com", "address": "2 Road"},
        )
        invoice = LedgerStore.create_invoice(
            user=user, customer=customer, number=f"INV-{Invoice.objects.count() + 1}",
            items=[{"description": "Item", "quantity": 1, "unit_price": Decimal("10.00")}],
            amount=Decimal("10.00"), due_date=date.today(),
        )
        if payment_link_id:
            invoice = LedgerStore.update_invoice_payment_link(invoice.id, payment_link_id, payment_link_url)
        return invoice

    def test_create_card_invoice(self):
        response = self.client.post(reverse("api-invoices-list"), self.payload(amount="1.00"), format="json")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertNotIn("warning", body)
        self.assertEqual(body["data"]["amount"], "215.50")
        self.assertEqual(body["data"]["payment_link_url"], "https://buy.stripe.com/test_2")
        self.assertEqual(body["data"]["status"], "pending")
        self.assertEqual(len(body["data"]["items"]), 2)
        self.sendgrid.send.assert_called_once()

    def test_create_reports_email_failure_as_warning(self):
        self.sendgrid.send.side_effect = RuntimeError("boom")

        response = self.client.post(reverse("api-invoices-list"), self.payload(), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["warning"]["code"], "NOTIFICATION_FAILED")

    def test_create_validation_error_envelope(self):
        response = self.client.post(reverse("api-invoices-list"), self.payload(items=[]), format="json")

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["code"], "VALIDATION_ERROR")
        self.assertIn("items", [f["field"] for f in body["error"]["fields"]])
        self.assertTrue(body["request_id"])
        self.assertFalse(Invoice.objects.exists())

    def test_create_with_negative_quantity(self):
        items = [{"description": "Bad", "quantity": -1, "unit_price": "1.00"}]
        response = self.client.post(reverse("api-invoices-list"), self.payload(items=items), format="json")
        self.assertEqual(response.status_code, 400)

    @override_settings(STRIPE_SECRET_KEY="")
    def test_create_without_gateway_credentials(self):
        response = self.client.post(reverse("api-invoices-list"), self.payload(), format="json")

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "CONFIGURATION_ERROR")
        self.assertEqual(Invoice.objects.count(), 1)

    def test_create_gateway_failure(self):
        self.stripe.failures["prices.create"] = stripe.AuthenticationError("Invalid API Key provided", http_status=401)

        response = self.client.post(reverse("api-invoices-list"), self.payload(), format="json")

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"]["code"], "GATEWAY_ERROR")

    def test_create_check_invoice_paid(self):
        payload = self.payload(
            payment_method="check", check_number="1001", check_received_date=date.today().isoformat(),
        )
        response = self.client.post(reverse("api-invoices-list"), payload, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["status"], "paid")
        self.assertEqual(self.stripe.calls, [])

    def test_received_date_requires_check(self):
        payload = self.payload(check_received_date=date.today().isoformat())
        response = self.client.post(reverse("api-invoices-list"), payload, format="json")
        self.assertEqual(response.status_code, 400)

    def test_list_only_own_invoices(self):
        mine = self.make_invoice()
        self.make_invoice(user=self.other)

        response = self.client.get(reverse("api-invoices-list"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual([i["id"] for i in response.json()["data"]], [mine.id])

    def test_retrieve_other_tenants_invoice_is_forbidden(self):
        theirs = self.make_invoice(user=self.other)
        response = self.client.get(reverse("api-invoices-detail", args=[theirs.id]))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "PERMISSION_DENIED")

    def test_retrieve_missing_invoice(self):
        response = self.client.get(reverse("api-invoices-detail", args=[99999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "RESOURCE_NOT_FOUND")

    def test_retrieve_after_customer_deleted(self):
        invoice = self.make_invoice()
        Customer.objects.filter(pk=self.customer.pk).delete()

        response = self.client.get(reverse("api-invoices-detail", args=[invoice.id]))

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["data"]["customer"])

    def test_partial_update_replaces_items(self):
        invoice = self.make_invoice()
        items = [{"description": "New", "quantity": 4, "unit_price": "2.50"}]

        response = self.client.patch(reverse("api-invoices-detail", args=[invoice.id]), {"items": items}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["amount"], "10.00")
        self.assertEqual(InvoiceItem.objects.get(invoice=invoice).description, "New")

    def test_resend(self):
        invoice = self.make_invoice(payment_link_id="plink_old", payment_link_url="https://buy.stripe.com/old")

        response = self.client.post(reverse("api-invoices-resend", args=[invoice.id]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["payment_link_id"], "plink_2")
        self.assertEqual(self.stripe.calls[0][:2], ("payment_links.update", {"id": "plink_old", "active": False}))
        self.assertEqual(self.stripe.operations()[1:], ["prices.create", "payment_links.create"])

    def test_resend_other_tenants_invoice(self):
        theirs = self.make_invoice(user=self.other)
        response = self.client.post(reverse("api-invoices-resend", args=[theirs.id]))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.stripe.calls, [])

    def test_cancel_payment_link(self):
        invoice = self.make_invoice(payment_link_id="plink_old", payment_link_url="https://buy.stripe.com/old")

        response = self.client.delete(reverse("api-invoices-payment-link", args=[invoice.id]))

        self.assertEqual(response.status_code, 200)
        invoice.refresh_from_db()
        self.assertEqual(invoice.payment_link_id, "")
        self.assertEqual(invoice.payment_link_url, "")
        self.assertEqual(invoice.status, Invoice.Status.PENDING)

    def test_delete(self):
        invoice = self.make_invoice(payment_link_id="plink_old")

        response = self.client.delete(reverse("api-invoices-detail", args=[invoice.id]))

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Invoice.objects.filter(pk=invoice.id).exists())
        self.assertFalse(InvoiceItem.objects.filter(invoice_id=invoice.id).exists())

    def test_delete_other_tenants_invoice(self):
        theirs = self.make_invoice(user=self.other)
        response = self.client.delete(reverse("api-invoices-detail", args=[theirs.id]))
        self.assertEqual(response.status_code, 403)
        self.assertTrue(Invoice.objects.filter(pk=theirs.id).exists())

    def test_requires_authentication(self):
        response = APIClient().get(reverse("api-invoices-list"))
        self.assertIn(response.status_code, (401, 403))
        self.assertFalse(response.json()["success"])


class CustomerAPITest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="TestPass123!")
        self.other = User.objects.create_user(username="other", password="TestPass123!")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_create_and_list(self):
        response = self.client.post(
            reverse("api-customers-list"),
            {"name": "Acme", "email": "ap@acme.example.com", "address": "1 Road"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Customer.objects.get().user, self.user)

        LedgerStore.create_customer(self.other, {"name": "Hidden", "email": "h@example.com", "address": "x"})
        response = self.client.get(reverse("api-customers-list"))
        self.assertEqual([c["name"] for c in response.json()], ["Acme"])

    def test_other_tenants_customer_is_forbidden(self):
        theirs = LedgerStore.create_customer(self.other, {"name": "Hidden", "email": "h@example.com", "address": "x"})
        response = self.client.get(reverse("api-customers-detail", args=[theirs.id]))
        self.assertEqual(response.status_code, 403)

    def test_update(self):
        mine = LedgerStore.create_customer(self.user, {"name": "Acme", "email": "a@example.com", "address": "x"})
        response = self.client.patch(reverse("api-customers-detail", args=[mine.id]), {"name": "Acme Corp"}, format="json")
        self.assertEqual(response.status_code, 200)
        mine.refresh_from_db()
        self.assertEqual(mine.name, "Acme Corp")


class SettingsAPITest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="TestPass123!")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_patch_merges_and_masks(self):
        url = reverse("api-settings")
        self.client.patch(url, {"stripe_secret_key": "sk_test_abcdefgh1234"}, format="json")
        response = self.client.patch(url, {"company_name": "Owner Ltd"}, format="json")

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["company_name"], "Owner Ltd")
        self.assertEqual(data["stripe_secret_key"], "sk_****1234")
        self.assertEqual(LedgerStore.get_settings_by_user_id(self.user.id).stripe_secret_key, "sk_test_abcdefgh1234")

    def test_patch_rejects_wrong_prefix(self):
        response = self.client.patch(reverse("api-settings"), {"sendgrid_api_key": "not-a-key"}, format="json")

        self.assertEqual(response.status_code, 400)
        fields = [f["field"] for f in response.json()["error"]["fields"]]
        self.assertIn("sendgrid_api_key", fields)

    def test_get_creates_missing_settings(self):
        LedgerStore.get_settings_by_user_id(self.user.id).delete()
        response = self.client.get(reverse("api-settings"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["stripe_secret_key"], "")


class HealthTest(TestCase):
    def test_liveness(self):
        response = self.client.get(reverse("health_check"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertIn("no-cache", response["Cache-Control"])

    def test_readiness(self):
        response = self.client.get(reverse("readiness_check"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["database"], "ok")

    def test_request_id_header(self):
        response = self.client.get(reverse("health_check"), HTTP_X_REQUEST_ID="req-123")
        self.assertEqual(response["X-Request-ID"], "req-123")

    def test_malformed_request_id_is_replaced(self):
        response = self.client.get(reverse("health_check"), HTTP_X_REQUEST_ID="bad id\nvalue")
        self.assertNotEqual(response["X-Request-ID"], "bad id\nvalue")
        self.assertEqual(len(response["X-Request-ID"]), 32)
