from django.contrib import admin

from .models import PaymentDraft, Transaction


@admin.register(PaymentDraft)
class PaymentDraftAdmin(admin.ModelAdmin):
    list_display = ["transaction_uuid", "buyer_email", "total_amount", "status", "failure_count", "created_at"]
    list_filter = ["status", "order_type", "created_at"]
    search_fields = ["transaction_uuid", "buyer_email"]
    readonly_fields = ["transaction_uuid", "signature", "created_at", "updated_at"]

    fieldsets = (
        ("Basic Information", {"fields": ("transaction_uuid", "buyer_email", "cart", "order_type", "status")}),
        ("Amount Information", {"fields": ("subtotal", "delivery_fee", "total_amount")}),
        ("Checkout", {"fields": ("lines", "delivery_info")}),
        ("Gateway", {"fields": ("product_code", "signature", "failure_count")}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = [
        "transaction_id",
        "buyer_email",
        "seller_email",
        "amount",
        "status",
        "needs_review",
        "date",
    ]
    list_filter = ["status", "payment_method", "needs_review", "date"]
    search_fields = ["transaction_id", "transaction_uuid", "buyer_email", "seller_email"]
    readonly_fields = ["transaction_id", "transaction_uuid", "created_at", "updated_at"]

    fieldsets = (
        ("Basic Information", {"fields": ("transaction_id", "transaction_uuid", "status", "needs_review")}),
        ("Payment Details", {"fields": ("amount", "payment_method", "date")}),
        ("Parties", {"fields": ("buyer_email", "seller_email")}),
        ("Orders", {"fields": ("order_details",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )
