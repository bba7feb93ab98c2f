from django.contrib import admin

from .models import Customer, Invoice, InvoiceItem, ProcessedWebhook, UserSettings


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('number', 'user', 'customer_id', 'amount', 'status', 'payment_method', 'due_date', 'created_at')
    list_filter = ('status', 'payment_method')
    search_fields = ('number', 'payment_link_id')
    inlines = [InvoiceItemInline]


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('name', 'email', 'user', 'created_at')
    search_fields = ('name', 'email')


@admin.register(UserSettings)
class UserSettingsAdmin(admin.ModelAdmin):
    list_display = ('user', 'company_name', 'company_email', 'updated_at')
    exclude = ('stripe_secret_key', 'stripe_webhook_secret', 'sendgrid_api_key')


@admin.register(ProcessedWebhook)
class ProcessedWebhookAdmin(admin.ModelAdmin):
    list_display = ('event_id', 'event_type', 'invoice_id', 'created_at')
    search_fields = ('event_id',)
