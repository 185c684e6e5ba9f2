from django.contrib import admin

from .models import Cart, CartItem, Order, OrderStatusEvent


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    readonly_fields = ("listing_kind", "listing_id", "seller_email", "name", "unit_price", "quantity")


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("token", "buyer_email", "kind", "created_at", "updated_at")
    search_fields = ("token", "buyer_email")
    list_filter = ("kind",)
    readonly_fields = ("token", "created_at", "updated_at")
    inlines = [CartItemInline]


class OrderStatusEventInline(admin.TabularInline):
    model = OrderStatusEvent
    extra = 0
    readonly_fields = ("from_status", "to_status", "occurred_at", "actor_email", "created_at")
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_number",
        "buyer_email",
        "seller_email",
        "order_type",
        "total_amount",
        "payment_method",
        "status",
        "created_at",
    )
    search_fields = ("order_number", "buyer_email", "seller_email", "transaction_id")
    list_filter = ("status", "order_type", "payment_method", "created_at")
    readonly_fields = ("order_number", "items", "status_times", "created_at", "updated_at", "cancelled_at")
    inlines = [OrderStatusEventInline]
