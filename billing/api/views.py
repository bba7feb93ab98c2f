from typing import Any, Dict, Optional, cast

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.models import Customer
from billing.services import InvoiceService, WorkflowResult
from billing.store import LedgerStore

from .permissions import IsOwner
from .response import APIResponse
from .serializers import (
    CustomerSerializer,
    InvoiceDetailSerializer,
    InvoiceListSerializer,
    InvoiceWriteSerializer,
    UserSettingsSerializer,
)

INVOICE_ID_PARAM = OpenApiParameter(
    name="pk",
    description="Invoice ID",
    required=True,
    type=OpenApiTypes.INT,
    location=OpenApiParameter.PATH,
)


def _warning(result: WorkflowResult) -> Optional[Dict[str, str]]:
    return result.warning.to_warning() if result.warning else None


# ------------------------------
# Customer ViewSet
# ------------------------------
@extend_schema_view(
    list=extend_schema(summary="List customers", description="Customers owned by the authenticated user."),
    retrieve=extend_schema(summary="Get customer"),
    create=extend_schema(summary="Create customer"),
    update=extend_schema(summary="Update customer"),
    partial_update=extend_schema(summary="Partial update customer"),
    destroy=extend_schema(
        summary="Delete customer",
        description="Delete a customer. Invoices that reference it are kept.",
    ),
)
class CustomerViewSet(viewsets.ModelViewSet):
    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    permission_classes = [IsAuthenticated, IsOwner]

    def get_queryset(self):
        if self.action == "list":
            return LedgerStore.list_customers(self.request.user)
        # Detail lookups see every row so that other tenants' customers yield 403, not 404.
        return Customer.objects.all()

    def perform_create(self, serializer):
        serializer.instance = LedgerStore.create_customer(self.request.user, serializer.validated_data)

    def perform_update(self, serializer):
        serializer.instance = LedgerStore.update_customer(serializer.instance.pk, serializer.validated_data)

    def perform_destroy(self, instance):
        LedgerStore.delete_customer(instance.pk)


# ------------------------------
# Invoice ViewSet
# ------------------------------
@extend_schema_view(
    list=extend_schema(
        summary="List invoices",
        description="Invoices owned by the authenticated user, newest first.",
        responses={200: InvoiceListSerializer(many=True)},
    ),
    retrieve=extend_schema(
        summary="Get invoice details",
        description="Invoice with its line items and customer.",
        parameters=[INVOICE_ID_PARAM],
        responses={200: InvoiceDetailSerializer},
    ),
    create=extend_schema(
        summary="Create invoice",
        description=(
            "Create an invoice with line items. The amount is recomputed from the items. "
            "Card invoices get a payment link; a failed email is reported in `warning`."
        ),
        request=InvoiceWriteSerializer,
        responses={201: InvoiceDetailSerializer},
    ),
    partial_update=extend_schema(
        summary="Edit invoice",
        description="Replace line items and edit due date or check details.",
        request=InvoiceWriteSerializer,
        responses={200: InvoiceDetailSerializer},
        parameters=[INVOICE_ID_PARAM],
    ),
    destroy=extend_schema(
        summary="Delete invoice",
        description="Deactivate the payment link, then delete the invoice and its items.",
        parameters=[INVOICE_ID_PARAM],
    ),
)
class InvoiceViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = InvoiceDetailSerializer
    lookup_field = "pk"
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        return LedgerStore.list_invoices(self.request.user)

    def list(self, request: Request) -> Response:
        invoices = self.get_queryset()
        return APIResponse.success(
            data=InvoiceListSerializer(invoices, many=True).data,
            message="Invoices retrieved.",
        )

    def retrieve(self, request: Request, pk: Optional[int] = None) -> Response:
        invoice = InvoiceService.get_owned_invoice(request.user, int(pk))
        return APIResponse.success(data=InvoiceDetailSerializer(invoice).data, message="Invoice retrieved.")

    def create(self, request: Request) -> Response:
        serializer = InvoiceWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(cast(Dict[str, Any], serializer.validated_data))
        items = [dict(item) for item in data.pop("items")]

        result = InvoiceService.create_invoice(request.user, data, items)
        return APIResponse.success(
            data=InvoiceDetailSerializer(result.invoice).data,
            message="Invoice created.",
            status_code=status.HTTP_201_CREATED,
            warning=_warning(result),
        )

    def partial_update(self, request: Request, pk: Optional[int] = None) -> Response:
        serializer = InvoiceWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = dict(cast(Dict[str, Any], serializer.validated_data))
        items = data.pop("items", None)
        if items is not None:
            items = [dict(item) for item in items]

        invoice = InvoiceService.update_invoice(request.user, int(pk), data, items)
        return APIResponse.success(data=InvoiceDetailSerializer(invoice).data, message="Invoice updated.")

    def destroy(self, request: Request, pk: Optional[int] = None) -> Response:
        InvoiceService.delete_invoice(request.user, int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="Resend invoice",
        description="Issue a fresh payment link for unpaid card invoices and email the invoice again.",
        request=None,
        responses={200: InvoiceDetailSerializer},
        parameters=[INVOICE_ID_PARAM],
    )
    @action(detail=True, methods=["post"], url_path="resend")
    def resend(self, request: Request, pk: Optional[int] = None) -> Response:
        result = InvoiceService.resend_invoice(request.user, int(pk))
        return APIResponse.success(
            data=InvoiceDetailSerializer(result.invoice).data,
            message="Invoice resent.",
            warning=_warning(result),
        )

    @extend_schema(
        summary="Cancel payment link",
        description="Deactivate the payment link and clear it from the invoice. Status is unchanged.",
        request=None,
        responses={200: InvoiceDetailSerializer},
        parameters=[INVOICE_ID_PARAM],
    )
    @action(detail=True, methods=["delete"], url_path="payment-link")
    def payment_link(self, request: Request, pk: Optional[int] = None) -> Response:
        invoice = InvoiceService.cancel_payment_link(request.user, int(pk))
        return APIResponse.success(data=InvoiceDetailSerializer(invoice).data, message="Payment link removed.")


# ------------------------------
# Settings
# ------------------------------
class SettingsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get settings", responses={200: UserSettingsSerializer})
    def get(self, request: Request) -> Response:
        user_settings = LedgerStore.get_settings_by_user_id(request.user.id)
        if user_settings is None:
            user_settings = LedgerStore.upsert_settings(request.user.id, {})
        return APIResponse.success(data=UserSettingsSerializer(user_settings).data, message="Settings retrieved.")

    @extend_schema(
        summary="Update settings",
        description="Merge the supplied fields into the saved settings. Omitted fields keep their values.",
        request=UserSettingsSerializer,
        responses={200: UserSettingsSerializer},
    )
    def patch(self, request: Request) -> Response:
        serializer = UserSettingsSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user_settings = LedgerStore.upsert_settings(request.user.id, dict(serializer.validated_data))
        return APIResponse.success(data=UserSettingsSerializer(user_settings).data, message="Settings saved.")
