from rest_framework import serializers

from market.serializers import DeliveryInfoSerializer

from .models import PaymentDraft, Transaction


class InitiatePaymentSerializer(DeliveryInfoSerializer):
    cart_token = serializers.UUIDField()


class PaymentFormSerializer(serializers.Serializer):
    form_url = serializers.URLField()
    transaction_uuid = serializers.CharField()
    fields = serializers.DictField(child=serializers.CharField())


class PaymentDraftSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentDraft
        fields = [
            "transaction_uuid",
            "buyer_email",
            "order_type",
            "lines",
            "delivery_info",
            "subtotal",
            "delivery_fee",
            "total_amount",
            "status",
            "failure_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "transaction_id",
            "transaction_uuid",
            "amount",
            "status",
            "status_display",
            "payment_method",
            "buyer_email",
            "seller_email",
            "date",
            "order_details",
            "needs_review",
        ]
        read_only_fields = fields
