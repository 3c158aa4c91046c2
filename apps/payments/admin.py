from django.contrib import admin

from apps.payments.models import Payment, PaymentOrder


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = (
        "transaction_id",
        "invoice_number",
        "case",
        "end_user",
        "payment_method",
        "status",
        "amount",
        "discount_amount",
        "payment_date",
    )
    list_filter = ("payment_method", "status")
    search_fields = ("transaction_id", "invoice_number", "case__case_id", "end_user__username", "coupon_code")
    readonly_fields = ("invoice_number", "created_at")


@admin.register(PaymentOrder)
class PaymentOrderAdmin(admin.ModelAdmin):
    list_display = ("gateway_order_id", "status", "payment_method", "is_test_mode", "end_user", "final_amount", "created_at")
    list_filter = ("status", "payment_method", "is_test_mode")
    search_fields = ("gateway_order_id", "end_user__username", "coupon_code")
    readonly_fields = ("created_at", "completed_at")
