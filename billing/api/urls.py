"""API URL routing for Paydesk."""
from django.urls import path
from rest_framework.routers import DefaultRouter

from billing import webhook_views
from .views import CustomerViewSet, InvoiceViewSet, SettingsView

router = DefaultRouter()
router.register(r'customers', CustomerViewSet, basename='api-customers')
router.register(r'invoices', InvoiceViewSet, basename='api-invoices')

urlpatterns = router.urls + [
    path('settings/', SettingsView.as_view(), name='api-settings'),
    path('webhook/', webhook_views.stripe_webhook, name='stripe-webhook'),
    path('webhook/<int:user_id>/', webhook_views.stripe_webhook, name='stripe-webhook-tenant'),
]
