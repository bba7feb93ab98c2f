"""SendGrid delivery of invoice notifications."""

import base64
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from django.template.loader import render_to_string
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Attachment,
    Content,
    Disposition,
    FileContent,
    FileName,
    FileType,
    From,
    Mail,
    To,
)

from .config import MailCredentials
from .errors import NotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentAttachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"


class SendGridNotificationService:
    """Sends invoice emails through SendGrid using per-operation credentials."""

    def __init__(self, credentials: MailCredentials):
        self.from_email = credentials.from_email
        self.from_name = credentials.from_name
        self.client = SendGridAPIClient(credentials.api_key)

    def send_invoice_notification(
        self,
        to_email: str,
        invoice_number: str,
        amount: Decimal,
        due_date: date,
        payment_url: Optional[str] = None,
        attachment: Optional[DocumentAttachment] = None,
    ) -> dict:
        """
        Send an invoice email, optionally with a payment link and a document attachment.

        Raises:
            NotificationError: if the message could not be handed to SendGrid.
        """
        if not to_email:
            raise NotificationError("Customer has no email address")

        context = {
            "invoice_number": invoice_number,
            "amount": f"{Decimal(amount):.2f}",
            "due_date": due_date,
            "payment_url": payment_url,
        }
        subject = f"Invoice {invoice_number} - Payment Required"
        plain_text = render_to_string("billing/emails/invoice_notification.txt", context)
        html_content = render_to_string("billing/emails/invoice_notification.html", context)

        message = Mail(
            from_email=From(self.from_email, self.from_name or None),
            to_emails=To(to_email),
            subject=subject,
            plain_text_content=Content("text/plain", plain_text),
            html_content=Content("text/html", html_content),
        )
        if attachment is not None:
            message.attachment = Attachment(
                FileContent(base64.b64encode(attachment.content).decode()),
                FileName(attachment.filename),
                FileType(attachment.mime_type),
                Disposition("attachment"),
            )

        try:
            response = self.client.send(message)
        except Exception as exc:
            logger.error(f"SendGrid send failed for invoice {invoice_number}: {_parse_sendgrid_error(exc)}")
            raise NotificationError(f"Invoice email could not be sent: {_parse_sendgrid_error(exc)}") from exc

        if response.status_code >= 400:
            raise NotificationError(f"SendGrid rejected the message (status {response.status_code})")

        logger.info(f"Invoice {invoice_number} emailed to {to_email}")
        return {"status": "sent", "response": response.status_code}


def _parse_sendgrid_error(exc: Exception) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return str(body or exc)
