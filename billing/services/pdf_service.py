"""
PDF Service - renders the invoice document attached to notifications.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from django.conf import settings
from django.template.loader import render_to_string

if TYPE_CHECKING:
    from billing.models import Invoice, UserSettings

logger = logging.getLogger(__name__)


class PDFService:
    """Renders invoices to PDF with WeasyPrint when it is installed."""

    @staticmethod
    def is_available() -> bool:
        """Check if PDF generation is available."""
        try:
            from weasyprint import HTML  # noqa: F401
            return True
        except (ImportError, OSError):
            return False

    @staticmethod
    def render_html(invoice: "Invoice", company: Optional["UserSettings"] = None) -> str:
        context = {
            "invoice": invoice,
            "items": list(invoice.items.all()),
            "customer": invoice.customer_or_none,
            "company": company,
            "branding_color": "#4f46e5",
        }
        return render_to_string("billing/invoice_document.html", context)

    @staticmethod
    def generate_pdf_bytes(invoice: "Invoice", company: Optional["UserSettings"] = None) -> bytes:
        """
        Generate PDF bytes for an invoice.

        Raises:
            ValueError: If PDF generation is unavailable or fails
        """
        try:
            markup = PDFService.render_html(invoice, company)
        except Exception as exc:
            logger.error(f"Invoice template failed to render for {invoice.number}: {exc}")
            raise ValueError("PDF generation failed") from exc

        try:
            from weasyprint import HTML
            from weasyprint.text.fonts import FontConfiguration
        except (ImportError, OSError) as exc:
            raise ValueError("PDF generation is unavailable: WeasyPrint is not installed") from exc

        html = HTML(string=markup, base_url=getattr(settings, "SITE_URL", ""))
        try:
            pdf_bytes = html.write_pdf(font_config=FontConfiguration())
        except Exception as exc:
            logger.error(f"PDF generation failed for invoice {invoice.number}: {exc}")
            raise ValueError("PDF generation failed") from exc

        logger.info(f"Generated PDF for invoice {invoice.number}")
        return pdf_bytes

    @staticmethod
    def get_invoice_filename(invoice: "Invoice") -> str:
        return f"invoice-{invoice.number}.pdf"
