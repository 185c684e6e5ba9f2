from django.contrib import admin

from .models import AgriInput, Product, StockAdjustment


class ListingAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "price", "quantity", "unit", "seller_email", "created_at")
    search_fields = ("name", "seller_email")
    list_filter = ("category", "unit", "created_at")
    readonly_fields = ("created_at", "updated_at")


@admin.register(Product)
class ProductAdmin(ListingAdmin):
    pass


@admin.register(AgriInput)
class AgriInputAdmin(ListingAdmin):
    pass


@admin.register(StockAdjustment)
class StockAdjustmentAdmin(admin.ModelAdmin):
    list_display = ("listing_kind", "listing_id", "direction", "delta", "resulting_quantity", "idempotency_key", "created_at")
    search_fields = ("idempotency_key",)
    list_filter = ("listing_kind", "direction", "created_at")
    readonly_fields = ("created_at",)
