from rest_framework import serializers

from .models import AgriInput, Product, StockAdjustment


class ListingSerializerMixin:
    def validate_price(self, value):
        """
        Ensure that the listing price is a positive number.
        """
        if value <= 0:
            raise serializers.ValidationError("Price must be greater than zero.")
        return value

    def validate_quantity(self, value):
        # Seller edits may drop stock to zero, new listings must carry some.
        if self.instance is None and value <= 0:
            raise serializers.ValidationError("Quantity must be greater than zero.")
        if value < 0:
            raise serializers.ValidationError("Quantity cannot be negative.")
        return value

    def validate_description(self, value):
        if len(value) > 100:
            raise serializers.ValidationError("Description must be 100 characters or less.")
        return value


class ProductSerializer(ListingSerializerMixin, serializers.ModelSerializer):
    category_display = serializers.CharField(source="get_category_display", read_only=True)
    kind = serializers.CharField(read_only=True)

    class Meta:
        model = Product
        fields = "__all__"
        extra_kwargs = {"seller_email": {"read_only": True}}


class AgriInputSerializer(ListingSerializerMixin, serializers.ModelSerializer):
    category_display = serializers.CharField(source="get_category_display", read_only=True)
    kind = serializers.CharField(read_only=True)

    class Meta:
        model = AgriInput
        fields = "__all__"
        extra_kwargs = {"seller_email": {"read_only": True}}


class AdjustQuantitySerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    operation = serializers.ChoiceField(choices=StockAdjustment.Direction.choices)
    seller_email = serializers.EmailField(required=False)
    idempotency_key = serializers.CharField(max_length=255, required=False, allow_blank=True)


class SellerListingsSerializer(serializers.Serializer):
    seller_email = serializers.EmailField()
    listing_count = serializers.IntegerField()
    sample = serializers.SerializerMethodField()

    def get_sample(self, row):
        sample = row.get("sample")
        if sample is None:
            return None
        serializer_class = ProductSerializer if isinstance(sample, Product) else AgriInputSerializer
        return serializer_class(sample, context=self.context).data
