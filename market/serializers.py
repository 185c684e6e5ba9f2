from phonenumber_field.serializerfields import PhoneNumberField
from rest_framework import serializers

from producer.models import ListingKind

from .models import Cart, CartItem, Order, OrderStatus, OrderStatusEvent, PaymentMethod


class CartItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = [
            "id",
            "listing_kind",
            "listing_id",
            "seller_email",
            "name",
            "image",
            "category",
            "unit_price",
            "quantity",
            "line_total",
        ]
        read_only_fields = fields


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Cart
        fields = ["token", "buyer_email", "kind", "items", "subtotal", "created_at", "updated_at"]
        read_only_fields = ["token", "buyer_email", "items", "subtotal", "created_at", "updated_at"]


class CartCreateSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=ListingKind.choices, default=ListingKind.PRODUCT)


class AddCartItemSerializer(serializers.Serializer):
    listing_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1, default=1)
    seller_email = serializers.EmailField(required=False)
    idempotency_key = serializers.CharField(max_length=200, required=False, allow_blank=True)


class UpdateCartItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    idempotency_key = serializers.CharField(max_length=200, required=False, allow_blank=True)


class DeliveryInfoSerializer(serializers.Serializer):
    delivery_address = serializers.CharField(max_length=500)
    phone_number = PhoneNumberField()

    def delivery_info(self):
        return {
            "delivery_address": self.validated_data["delivery_address"],
            "phone_number": str(self.validated_data["phone_number"]),
        }


class CheckoutSerializer(DeliveryInfoSerializer):
    payment_method = serializers.ChoiceField(choices=[PaymentMethod.CASH], default=PaymentMethod.CASH)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)


class OrderStatusEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusEvent
        fields = ["from_status", "to_status", "occurred_at", "actor_email"]


class OrderSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source="get_status_display", read_only=True)
    estimated_delivery = serializers.DateTimeField(read_only=True)
    phone_number = serializers.CharField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "items",
            "subtotal",
            "delivery_fee",
            "total_amount",
            "buyer_email",
            "seller_email",
            "order_type",
            "delivery_address",
            "phone_number",
            "payment_method",
            "transaction_id",
            "status",
            "status_display",
            "created_at",
            "updated_at",
            "cancelled_at",
            "estimated_delivery",
        ]
        read_only_fields = fields


class UpdateOrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[(s.value, s.label) for s in OrderStatus.progression()[1:]])
    occurred_at = serializers.DateTimeField(required=False)


class TimelineEntrySerializer(serializers.Serializer):
    status = serializers.CharField()
    label = serializers.CharField()
    timestamp = serializers.DateTimeField()
    synthetic = serializers.BooleanField()
