from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)
from rest_framework.routers import DefaultRouter

from market.views import (
    CartCreateView,
    CartDetailView,
    CartItemCreateView,
    CartItemDetailView,
    CheckoutView,
    GlobalEnumView,
    OrderViewSet,
)
from payment.views import TransactionViewSet
from producer.views import AgriInputViewSet, ProductViewSet

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="products")
router.register(r"agri-inputs", AgriInputViewSet, basename="agri-inputs")
router.register(r"orders", OrderViewSet, basename="orders")
router.register(r"transactions", TransactionViewSet, basename="transactions")


urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/", include(router.urls)),
    path("api/v1/global-enums/", GlobalEnumView.as_view(), name="global_enums"),
    path("api/v1/carts/", CartCreateView.as_view(), name="cart-create"),
    path("api/v1/carts/<uuid:token>/", CartDetailView.as_view(), name="cart-detail"),
    path("api/v1/carts/<uuid:token>/items/", CartItemCreateView.as_view(), name="cart-item-create"),
    path("api/v1/carts/<uuid:token>/items/<int:item_id>/", CartItemDetailView.as_view(), name="cart-item-detail"),
    path("api/v1/carts/<uuid:token>/checkout/", CheckoutView.as_view(), name="cart-checkout"),
    # Payment URLs
    path("api/v1/payments/", include("payment.urls")),
    path("docs/", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("api-docs/", SpectacularAPIView.as_view(), name="schema"),
    path("api-docs/swagger-ui/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),
]
