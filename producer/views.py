import logging

from django.db import transaction
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from main.exceptions import MarketplaceError, OwnershipMismatch, error_response

from .filters import AgriInputFilter, ProductFilter
from .models import AgriInput, ListingKind, Product
from .serializers import (
    AdjustQuantitySerializer,
    AgriInputSerializer,
    ProductSerializer,
    SellerListingsSerializer,
)
from .services import CatalogQueryService, InventoryLedger

logger = logging.getLogger(__name__)


class ListingViewSet(viewsets.ModelViewSet):
    """
    Shared listing endpoints. Reads are public; writes belong to the owning seller.
    """

    kind = None
    public_actions = ("list", "retrieve", "by_seller", "sellers")

    def get_permissions(self):
        if self.action in self.public_actions:
            return [AllowAny()]
        return [IsAuthenticated()]

    def perform_create(self, serializer):
        listing = serializer.save(seller_email=self.request.user.email)
        logger.info(f"{self.kind} #{listing.pk} created by {listing.seller_email}")

    def _check_owner(self, listing):
        if not listing.is_owned_by(self.request.user.email):
            logger.warning(f"{self.request.user.email} tried to modify {self.kind} #{listing.pk} owned by {listing.seller_email}")
            raise OwnershipMismatch("Only the seller who listed this item can change it.")

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        listing = self.get_object()
        with transaction.atomic():
            # Re-read under a row lock so the save cannot overwrite a concurrent stock change.
            listing = type(listing).objects.select_for_update().get(pk=listing.pk)
            try:
                self._check_owner(listing)
            except MarketplaceError as e:
                return error_response(e)
            serializer = self.get_serializer(listing, data=request.data, partial=partial)
            serializer.is_valid(raise_exception=True)
            self.perform_update(serializer)
        logger.info(f"{self.kind} #{listing.pk} updated by {request.user.email}")
        return Response(serializer.data)

    def destroy(self, request, *args, **kwargs):
        listing = self.get_object()
        try:
            self._check_owner(listing)
        except MarketplaceError as e:
            return error_response(e)
        logger.info(f"{self.kind} #{listing.pk} deleted by {request.user.email}")
        return super().destroy(request, *args, **kwargs)

    @extend_schema(
        summary="Adjust available quantity",
        description="Seller-side stock correction on an owned listing. A repeated idempotency key is not applied twice.",
        request=AdjustQuantitySerializer,
    )
    @action(detail=True, methods=["post"], url_path="adjust-quantity")
    def adjust_quantity(self, request, pk=None):
        serializer = AdjustQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            self._check_owner(self.get_object())
            listing = InventoryLedger().adjust(
                self.kind,
                pk,
                data["quantity"],
                data["operation"],
                expected_seller_email=data.get("seller_email") or request.user.email,
                idempotency_key=data.get("idempotency_key") or request.headers.get("Idempotency-Key"),
            )
        except MarketplaceError as e:
            return error_response(e)

        return Response({"success": True, "data": self.get_serializer(listing).data})

    @extend_schema(
        summary="Listings of one seller grouped by category",
        parameters=[OpenApiParameter("seller_email", str, OpenApiParameter.PATH)],
    )
    @action(detail=False, methods=["get"], url_path=r"by-seller/(?P<seller_email>[^/]+)")
    def by_seller(self, request, seller_email=None):
        grouped = CatalogQueryService().listings_by_seller(self.kind, seller_email)
        return Response(
            {category: self.get_serializer(listings, many=True).data for category, listings in grouped.items()}
        )

    @extend_schema(summary="Sellers with listings", responses=SellerListingsSerializer(many=True))
    @action(detail=False, methods=["get"])
    def sellers(self, request):
        rows = CatalogQueryService().sellers_with_listings(self.kind)
        return Response(SellerListingsSerializer(rows, many=True, context=self.get_serializer_context()).data)


class ProductViewSet(ListingViewSet):
    """
    A viewset for viewing and editing farm products.
    """

    kind = ListingKind.PRODUCT
    queryset = Product.objects.all().order_by("-created_at")
    serializer_class = ProductSerializer
    filterset_class = ProductFilter


class AgriInputViewSet(ListingViewSet):
    """
    A viewset for viewing and editing agricultural inputs.
    """

    kind = ListingKind.AGRI_INPUT
    queryset = AgriInput.objects.all().order_by("-created_at")
    serializer_class = AgriInputSerializer
    filterset_class = AgriInputFilter

