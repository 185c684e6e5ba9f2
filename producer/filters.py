import django_filters

from .models import AgriInput, Product


class ListingFilter(django_filters.FilterSet):
    seller_email = django_filters.CharFilter(field_name="seller_email", lookup_expr="iexact", label="Seller Email")
    search = django_filters.CharFilter(method="filter_search", label="Search")
    min_price = django_filters.NumberFilter(field_name="price", lookup_expr="gte", label="Minimum Price")
    max_price = django_filters.NumberFilter(field_name="price", lookup_expr="lte", label="Maximum Price")
    in_stock = django_filters.BooleanFilter(method="filter_in_stock", label="In Stock")

    def filter_search(self, queryset, name, value):
        return queryset.filter(name__icontains=value)

    def filter_in_stock(self, queryset, name, value):
        if value:
            return queryset.filter(quantity__gt=0)
        return queryset


class ProductFilter(ListingFilter):
    class Meta:
        model = Product
        fields = ["category", "unit", "seller_email", "search", "min_price", "max_price", "in_stock"]


class AgriInputFilter(ListingFilter):
    class Meta:
        model = AgriInput
        fields = ["category", "unit", "seller_email", "search", "min_price", "max_price", "in_stock"]
