import base64
from datetime import date
from decimal import Decimal

import pytest

from billing.config import MailCredentials
from billing.errors import NotificationError
from billing.sendgrid_service import DocumentAttachment, SendGridNotificationService

CREDENTIALS = MailCredentials(api_key="SG.unit", from_email="billing@example.com", from_name="Example Billing")


def sent_message(sendgrid_client):
    return sendgrid_client.send.call_args[0][0].get()


class TestSendInvoiceNotification:
    def test_message_content(self, sendgrid_client):
        service = SendGridNotificationService(CREDENTIALS)

        result = service.send_invoice_notification(
            "ap@acme.example.com", "INV-1", Decimal("25"), date(2030, 1, 31),
            payment_url="https://buy.stripe.com/1",
        )

        assert result == {"status": "sent", "response": 202}
        message = sent_message(sendgrid_client)
        assert message["subject"] == "Invoice INV-1 - Payment Required"
        assert message["from"] == {"email": "billing@example.com", "name": "Example Billing"}
        assert message["personalizations"][0]["to"] == [{"email": "ap@acme.example.com"}]
        bodies = {c["type"]: c["value"] for c in message["content"]}
        assert "25.00" in bodies["text/plain"]
        assert "https://buy.stripe.com/1" in bodies["text/html"]
        assert "attachments" not in message

    def test_without_payment_url(self, sendgrid_client):
        SendGridNotificationService(CREDENTIALS).send_invoice_notification(
            "ap@acme.example.com", "INV-2", Decimal("10.00"), date(2030, 1, 31),
        )
        bodies = {c["type"]: c["value"] for c in sent_message(sendgrid_client)["content"]}
        assert "buy.stripe.com" not in bodies["text/html"]

    def test_attachment(self, sendgrid_client):
        document = DocumentAttachment(filename="invoice-INV-3.pdf", content=b"%PDF-1.7")

        SendGridNotificationService(CREDENTIALS).send_invoice_notification(
            "ap@acme.example.com", "INV-3", Decimal("10.00"), date(2030, 1, 31), attachment=document,
        )

        attachment = sent_message(sendgrid_client)["attachments"][0]
        assert attachment["filename"] == "invoice-INV-3.pdf"
        assert attachment["type"] == "application/pdf"
        assert attachment["disposition"] == "attachment"
        assert base64.b64decode(attachment["content"]) == b"%PDF-1.7"

    def test_client_exception_becomes_notification_error(self, sendgrid_client):
        sendgrid_client.send.side_effect = RuntimeError("HTTP Error 401: Unauthorized")
        with pytest.raises(NotificationError, match="Unauthorized"):
            SendGridNotificationService(CREDENTIALS).send_invoice_notification(
                "ap@acme.example.com", "INV-4", Decimal("1.00"), date(2030, 1, 31),
            )

    def test_rejected_status(self, sendgrid_client):
        sendgrid_client.send.return_value.status_code = 400
        with pytest.raises(NotificationError):
            SendGridNotificationService(CREDENTIALS).send_invoice_notification(
                "ap@acme.example.com", "INV-5", Decimal("1.00"), date(2030, 1, 31),
            )

    def test_missing_recipient(self, sendgrid_client):
        with pytest.raises(NotificationError):
            SendGridNotificationService(CREDENTIALS).send_invoice_notification(
                "", "INV-6", Decimal("1.00"), date(2030, 1, 31),
            )
        sendgrid_client.send.assert_not_called()
