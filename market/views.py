import logging

from django.db.models import Q
from drf_spectacular.utils import extend_schema
from rest_framework import generics, mixins, status, views, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from main.enums import GlobalEnumSerializer, get_enum_values
from main.exceptions import MarketplaceError, OrderNotFound, error_response

from .filters import OrderFilter
from .models import Order
from .serializers import (
    AddCartItemSerializer,
    CartCreateSerializer,
    CartItemSerializer,
    CartSerializer,
    CheckoutSerializer,
    OrderSerializer,
    OrderStatusEventSerializer,
    TimelineEntrySerializer,
    UpdateCartItemSerializer,
    UpdateOrderStatusSerializer,
)
from .services import CartService, OrderStateMachine

logger = logging.getLogger(__name__)


class GlobalEnumView(views.APIView):
    """
    Provide a single endpoint to fetch enum metadata
    """

    permission_classes = []

    @extend_schema(responses=GlobalEnumSerializer)
    def get(self, _):
        """
        Return a list of all enums.
        """
        return Response(get_enum_values())


def idempotency_key_from(request, data):
    return data.get("idempotency_key") or request.headers.get("Idempotency-Key")


class CartMixin:
    permission_classes = [IsAuthenticated]

    def get_cart(self):
        return CartService().get_cart(self.kwargs["token"], self.request.user.email)


class CartCreateView(generics.CreateAPIView):
    serializer_class = CartSerializer
    permission_classes = [IsAuthenticated]

    @extend_schema(request=CartCreateSerializer, responses=CartSerializer)
    def post(self, request, *args, **kwargs):
        serializer = CartCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = CartService().create_cart(request.user.email, serializer.validated_data["kind"])
        return Response(CartSerializer(cart).data, status=status.HTTP_201_CREATED)


class CartDetailView(CartMixin, views.APIView):
    """Return one of the authenticated buyer's carts with its items."""

    @extend_schema(responses=CartSerializer)
    def get(self, request, *args, **kwargs):
        try:
            cart = self.get_cart()
        except MarketplaceError as e:
            return error_response(e)
        return Response(CartSerializer(cart).data)


class CartItemCreateView(CartMixin, views.APIView):
    @extend_schema(
        summary="Add to cart",
        description="Reserve stock for a listing and add it to the cart, merging with an existing line.",
        request=AddCartItemSerializer,
        responses=CartSerializer,
    )
    def post(self, request, *args, **kwargs):
        serializer = AddCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            cart = self.get_cart()
            CartService().add_item(
                cart,
                data["listing_id"],
                data["quantity"],
                expected_seller_email=data.get("seller_email"),
                idempotency_key=idempotency_key_from(request, data),
            )
        except MarketplaceError as e:
            return error_response(e)

        return Response(CartSerializer(cart).data, status=status.HTTP_201_CREATED)


class CartItemDetailView(CartMixin, views.APIView):
    @extend_schema(summary="Change cart quantity", request=UpdateCartItemSerializer, responses=CartItemSerializer)
    def patch(self, request, *args, **kwargs):
        serializer = UpdateCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            cart = self.get_cart()
            item = CartService().update_quantity(
                cart, self.kwargs["item_id"], data["quantity"], idempotency_key=idempotency_key_from(request, data)
            )
        except MarketplaceError as e:
            return error_response(e)

        return Response(CartItemSerializer(item).data)

    @extend_schema(summary="Remove from cart", responses={204: None})
    def delete(self, request, *args, **kwargs):
        try:
            cart = self.get_cart()
            CartService().remove_item(
                cart, self.kwargs["item_id"], idempotency_key=idempotency_key_from(request, request.data)
            )
        except MarketplaceError as e:
            return error_response(e)

        return Response(status=status.HTTP_204_NO_CONTENT)


class CheckoutView(CartMixin, views.APIView):
    @extend_schema(
        summary="Checkout (cash on delivery)",
        description="Split the cart into one order per seller. Online payments go through the payment initiation endpoint.",
        request=CheckoutSerializer,
        responses=OrderSerializer(many=True),
    )
    def post(self, request, *args, **kwargs):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            cart = self.get_cart()
            orders = CartService().checkout(
                cart,
                serializer.delivery_info(),
                payment_method=serializer.validated_data["payment_method"],
                declared_total=serializer.validated_data.get("total_amount"),
            )
        except MarketplaceError as e:
            return error_response(e)

        return Response(
            {"success": True, "orders": OrderSerializer(orders, many=True).data}, status=status.HTTP_201_CREATED
        )


class OrderViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, mixins.DestroyModelMixin, viewsets.GenericViewSet):
    """
    Orders visible to the authenticated user as buyer or seller. Deleting a pending
    order cancels it.
    """

    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        email = self.request.user.email
        return Order.objects.filter(Q(buyer_email__iexact=email) | Q(seller_email__iexact=email)).newest_first()

    @extend_schema(summary="Orders placed by the authenticated buyer")
    @action(detail=False, methods=["get"])
    def buyer(self, request):
        queryset = self.filter_queryset(Order.objects.for_buyer(request.user.email).newest_first())
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(self.get_serializer(page, many=True).data)

    @extend_schema(summary="Orders received by the authenticated seller")
    @action(detail=False, methods=["get"])
    def seller(self, request):
        queryset = self.filter_queryset(Order.objects.for_seller(request.user.email).newest_first())
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(self.get_serializer(page, many=True).data)

    @extend_schema(summary="Update order status", request=UpdateOrderStatusSerializer, responses=OrderSerializer)
    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request, pk=None):
        """Move the order forward (seller only). Intermediate states may be skipped."""
        serializer = UpdateOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = OrderStateMachine().transition(
                pk,
                serializer.validated_data["status"],
                occurred_at=serializer.validated_data.get("occurred_at"),
                actor_email=request.user.email,
                seller_email=request.user.email,
            )
        except MarketplaceError as e:
            return error_response(e)

        return Response(self.get_serializer(order).data)

    @extend_schema(summary="Status timeline", responses=TimelineEntrySerializer(many=True))
    @action(detail=True, methods=["get"])
    def timeline(self, request, pk=None):
        order = self.get_object()
        return Response(
            {
                "order_number": order.order_number,
                "status": order.status,
                "estimated_delivery": self.get_serializer(order).data["estimated_delivery"],
                "timeline": TimelineEntrySerializer(OrderStateMachine().timeline(order), many=True).data,
                "history": OrderStatusEventSerializer(order.status_events.all(), many=True).data,
            }
        )

    @extend_schema(summary="Cancel a pending order (buyer only)")
    def destroy(self, request, *args, **kwargs):
        try:
            order = self.get_queryset().get(pk=kwargs["pk"])
        except Order.DoesNotExist:
            return error_response(OrderNotFound())

        try:
            order = OrderStateMachine().cancel(order.pk, request.user.email)
        except MarketplaceError as e:
            return error_response(e)

        return Response(self.get_serializer(order).data)
