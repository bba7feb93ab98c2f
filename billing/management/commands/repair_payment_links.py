"""
Management command to reissue payment links for pending card invoices that have none,
e.g. after the payment provider failed during invoice creation. Links the owner
cancelled on purpose are left alone.
"""

import logging

from django.core.management.base import BaseCommand

from billing.errors import BillingError
from billing.models import Invoice
from billing.services import InvoiceService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Resend pending card invoices that have no payment link"

    def add_arguments(self, parser):
        parser.add_argument(
            "--user",
            type=int,
            default=None,
            help="Only repair invoices owned by this user id",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the invoices that would be repaired without calling the provider",
        )

    def handle(self, *args, **options):
        query = Invoice.objects.filter(
            status=Invoice.Status.PENDING,
            payment_method=Invoice.PaymentMethod.CARD,
            payment_link_id="",
            payment_link_cancelled_at__isnull=True,
        ).select_related("user")
        if options["user"] is not None:
            query = query.filter(user_id=options["user"])

        total = query.count()
        self.stdout.write(f"Found {total} invoices without a payment link")

        repaired = 0
        failed = 0
        for invoice in query:
            if options["dry_run"]:
                self.stdout.write(f"  {invoice.number} (user {invoice.user_id})")
                continue
            try:
                result = InvoiceService.resend_invoice(invoice.user, invoice.id)
            except BillingError as e:
                failed += 1
                logger.error(f"Payment link repair failed for invoice {invoice.id}: {e.message}")
                self.stdout.write(self.style.ERROR(f"✗ {invoice.number}: {e.message}"))
                continue

            repaired += 1
            if result.warning:
                self.stdout.write(self.style.WARNING(f"⚠ {invoice.number} linked, email failed: {result.warning.message}"))
            else:
                self.stdout.write(self.style.SUCCESS(f"✓ {invoice.number} linked"))

        if not options["dry_run"]:
            self.stdout.write(
                self.style.SUCCESS(
                    f"\nRepair Summary:\n"
                    f"  Repaired: {repaired}\n"
                    f"  Failed: {failed}"
                )
            )
