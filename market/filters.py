import django_filters

from .models import Order


class OrderFilter(django_filters.FilterSet):
    created_from = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte", label="Created From")
    created_to = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte", label="Created To")

    class Meta:
        model = Order
        fields = ["status", "order_type", "payment_method", "created_from", "created_to"]
