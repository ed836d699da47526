# payments/admin.py
"""
Admin configuration for payments app.

Payments are written by the gateway webhook and checkout verification;
the admin is read-only so status never moves outside the state machine.
"""

from django.contrib import admin
from payments.models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('gateway_order_id', 'user', 'course', 'amount_display', 'status',
                    'enrollment', 'created_at', 'paid_at')
    list_filter = ('status', 'institution', 'created_at')
    search_fields = ('gateway_order_id', 'gateway_payment_id', 'receipt_number',
                     'user__username', 'user__email')
    date_hierarchy = 'created_at'
    raw_id_fields = ('user', 'course', 'enrollment')

    fieldsets = (
        ('Order', {
            'fields': ('id', 'receipt_number', 'user', 'course', 'institution', 'enrollment')
        }),
        ('Amount', {
            'fields': ('amount', 'currency')
        }),
        ('Payment Gateway', {
            'fields': ('gateway_order_id', 'gateway_payment_id', 'gateway_signature',
                       'payment_method', 'bank_name', 'failure_reason')
        }),
        ('Status', {
            'fields': ('status', 'created_at', 'paid_at')
        }),
        ('Refund', {
            'fields': ('refund_id', 'refund_amount', 'refund_reason', 'refunded_at'),
            'classes': ('collapse',)
        }),
        ('Gateway Events', {
            'fields': ('webhook_events',),
            'classes': ('collapse',)
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def amount_display(self, obj):
        return f"{obj.amount / 100:,.2f} {obj.currency}"
    amount_display.short_description = 'Amount'
    amount_display.admin_order_field = 'amount'
