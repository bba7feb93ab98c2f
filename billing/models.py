from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone


class Customer(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="customers")
    name = models.CharField(max_length=255)
    email = models.EmailField()
    address = models.TextField()
    phone = models.CharField(max_length=50, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name', 'id']
        indexes = [models.Index(fields=['user', 'name'], name='billing_cus_user_id_7b1f0d_idx')]

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


class Invoice(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        FAILED = "failed", "Failed"

    class PaymentMethod(models.TextChoices):
        CARD = "card", "Card"
        CHECK = "check", "Check"

    number = models.CharField(max_length=40, unique=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="invoices")
    # Customers may be deleted while their invoices survive; no database-level constraint.
    customer = models.ForeignKey(
        Customer,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name="invoices",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    due_date = models.DateField()
    created_at = models.DateTimeField(default=timezone.now)
    payment_method = models.CharField(max_length=10, choices=PaymentMethod.choices, default=PaymentMethod.CARD)
    payment_link_id = models.CharField(max_length=255, blank=True)
    payment_link_url = models.URLField(max_length=500, blank=True)
    # Set when the owner removes the link on purpose; cleared when a new link is issued.
    payment_link_cancelled_at = models.DateTimeField(null=True, blank=True)
    receipt_url = models.URLField(max_length=500, blank=True)
    check_number = models.CharField(max_length=50, blank=True)
    check_received_date = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='billing_inv_user_id_4c2e9a_idx'),
            models.Index(fields=['status', 'payment_method'], name='billing_inv_status_8d3a51_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.number} ({self.status})"

    @property
    def customer_or_none(self):
        """The referenced customer, or None when it has since been deleted."""
        try:
            return self.customer
        except Customer.DoesNotExist:
            return None

    @property
    def has_payment_link(self) -> bool:
        return bool(self.payment_link_id)


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")
    description = models.CharField(max_length=500)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    class Meta:
        ordering = ['id']

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


class UserSettings(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="billing_settings")
    company_name = models.CharField(max_length=255, blank=True)
    company_address = models.TextField(blank=True)
    company_email = models.EmailField(blank=True)
    stripe_secret_key = models.CharField(max_length=255, blank=True)
    stripe_public_key = models.CharField(max_length=255, blank=True)
    stripe_webhook_secret = models.CharField(max_length=255, blank=True)
    sendgrid_api_key = models.CharField(max_length=255, blank=True)
    sendgrid_from_email = models.EmailField(blank=True)
    reset_link_url = models.URLField(max_length=500, blank=True)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "user settings"

    def __str__(self) -> str:
        return f"Settings for {self.user}"


class ProcessedWebhook(models.Model):
    event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100)
    invoice_id = models.BigIntegerField(null=True, blank=True)
    payload_hash = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f"{self.event_type} {self.event_id}"
