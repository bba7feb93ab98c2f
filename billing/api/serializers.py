from decimal import Decimal
from rest_framework import serializers

from billing.config import validate_credential_fields
from billing.models import Customer, Invoice, InvoiceItem, UserSettings

SECRET_FIELDS = ("stripe_secret_key", "stripe_webhook_secret", "sendgrid_api_key")


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ["id", "name", "email", "address", "phone", "created_at"]
        read_only_fields = ["id", "created_at"]


class InvoiceItemSerializer(serializers.ModelSerializer):
    description = serializers.CharField(max_length=500, min_length=1)
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = InvoiceItem
        fields = ["id", "description", "quantity", "unit_price", "total"]
        read_only_fields = ["id", "total"]


class InvoiceListSerializer(serializers.ModelSerializer):
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = [
            "id",
            "number",
            "customer_id",
            "amount",
            "status",
            "due_date",
            "payment_method",
            "payment_link_url",
            "item_count",
            "created_at",
        ]
        read_only_fields = fields

    def get_item_count(self, obj) -> int:
        return len(obj.items.all())


class InvoiceDetailSerializer(serializers.ModelSerializer):
    items = InvoiceItemSerializer(many=True, read_only=True)
    customer = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = [
            "id",
            "number",
            "customer_id",
            "customer",
            "amount",
            "status",
            "due_date",
            "created_at",
            "payment_method",
            "payment_link_id",
            "payment_link_url",
            "receipt_url",
            "check_number",
            "check_received_date",
            "items",
        ]
        read_only_fields = fields

    def get_customer(self, obj):
        customer = obj.customer_or_none
        return CustomerSerializer(customer).data if customer is not None else None


class InvoiceWriteSerializer(serializers.Serializer):
    """Input for create and partial update. `amount` is advisory; the server recomputes it."""

    customer_id = serializers.IntegerField(min_value=1)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    due_date = serializers.DateField()
    payment_method = serializers.ChoiceField(choices=Invoice.PaymentMethod.choices, default=Invoice.PaymentMethod.CARD)
    check_number = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    check_received_date = serializers.DateField(required=False, allow_null=True)
    items = InvoiceItemSerializer(many=True, allow_empty=False)

    def validate(self, attrs):
        if attrs.get("check_received_date") and attrs.get("payment_method", Invoice.PaymentMethod.CHECK) != Invoice.PaymentMethod.CHECK:
            raise serializers.ValidationError({"check_received_date": ["Only check payments have a received date."]})
        return attrs


class UserSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserSettings
        fields = [
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
            "updated_at",
        ]
        read_only_fields = ["updated_at"]
        extra_kwargs = {
            "tax_rate": {"min_value": Decimal("0"), "max_value": Decimal("100")},
        }

    def validate(self, attrs):
        errors = validate_credential_fields(attrs)
        if errors:
            raise serializers.ValidationError(errors)
        return attrs

    def to_representation(self, instance):
        data = super().to_representation(instance)
        for field_name in SECRET_FIELDS:
            data[field_name] = mask_secret(data.get(field_name) or "")
        return data


def mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return f"{value[:3]}****{value[-4:]}"
