import logging

from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from main.exceptions import DraftNotFound, MarketplaceError, OwnershipMismatch, error_response
from market.serializers import OrderSerializer
from market.services import CartService

from .models import Transaction
from .serializers import InitiatePaymentSerializer, PaymentDraftSerializer, PaymentFormSerializer, TransactionSerializer
from .services import PaymentReconciler

logger = logging.getLogger(__name__)


@extend_schema(summary="Start an eSewa payment", request=InitiatePaymentSerializer, responses=PaymentFormSerializer)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def initiate_payment(request: Request) -> Response:
    """Stage the buyer's cart and return the signed form to post to eSewa."""
    serializer = InitiatePaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        cart = CartService().get_cart(serializer.validated_data["cart_token"], request.user.email)
        _, form = PaymentReconciler().initiate(cart, serializer.delivery_info())
    except MarketplaceError as e:
        return error_response(e)

    return Response(form, status=status.HTTP_201_CREATED)


@extend_schema(summary="eSewa success callback", responses=TransactionSerializer)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def esewa_success(request: Request) -> Response:
    """Verify the callback and turn the staged checkout into orders. Safe to call more than once."""
    try:
        txn, orders = PaymentReconciler().reconcile(request.query_params.dict(), buyer_email=request.user.email)
    except MarketplaceError as e:
        return error_response(e)

    return Response(
        {
            "success": True,
            "transaction": TransactionSerializer(txn).data,
            "orders": OrderSerializer(orders, many=True).data,
        }
    )


@extend_schema(summary="eSewa failure callback", responses=PaymentDraftSerializer)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def esewa_failure(request: Request) -> Response:
    """Record a failed attempt. The staged checkout is kept and a fresh form is returned for a retry."""
    reconciler = PaymentReconciler()
    try:
        callback = reconciler.gateway.decode_callback(request.query_params.dict())
        if not callback["transaction_uuid"]:
            raise DraftNotFound()
        draft = reconciler.fail(callback["transaction_uuid"])
    except MarketplaceError as e:
        return error_response(e)

    return Response(
        {
            "success": False,
            "code": "payment_failed",
            "message": "Payment was not completed. Your cart has been kept.",
            "draft": PaymentDraftSerializer(draft).data,
            "retry": reconciler.form_for(draft),
        }
    )


@extend_schema(summary="Check payment status")
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def payment_status(request: Request, transaction_uuid: str) -> Response:
    try:
        data = PaymentReconciler().check_status(transaction_uuid, request.user.email)
    except MarketplaceError as e:
        return error_response(e)
    return Response({"success": True, "data": data})


class TransactionViewSet(
    mixins.ListModelMixin, mixins.RetrieveModelMixin, mixins.DestroyModelMixin, viewsets.GenericViewSet
):
    """Payments the authenticated user took part in, as buyer or seller."""

    serializer_class = TransactionSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ["status", "needs_review"]

    def get_queryset(self):
        return Transaction.objects.for_email(self.request.user.email)

    def destroy(self, request, *args, **kwargs):
        txn = self.get_object()
        if txn.buyer_email.lower() != request.user.email.lower():
            return error_response(OwnershipMismatch("Only the buyer can delete this transaction."))
        logger.info(f"Transaction {txn.transaction_id} deleted by {request.user.email}")
        txn.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
