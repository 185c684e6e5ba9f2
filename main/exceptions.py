"""
Domain errors shared by the producer, market and payment apps.

Every error is recoverable at the request boundary: views catch ``MarketplaceError``
and turn it into an error response with ``status_code``. Storage failures
(``django.db.DatabaseError``) are deliberately not part of this hierarchy and
propagate to the caller.
"""

from rest_framework import status
from rest_framework.response import Response


class MarketplaceError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    default_message = "Request could not be completed."

    def __init__(self, message=None, **payload):
        self.message = message or self.default_message
        self.payload = payload
        super().__init__(self.message)

    def as_dict(self):
        data = {"success": False, "code": self.code, "message": self.message}
        data.update(self.payload)
        return data


class ValidationError(MarketplaceError):
    code = "validation_error"
    default_message = "Invalid input."


class ListingNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "listing_not_found"
    default_message = "Listing not found."


class InsufficientStock(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_stock"
    default_message = "Not enough quantity available."


class OwnershipMismatch(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ownership_mismatch"
    default_message = "This listing does not belong to the specified seller."


class OrderNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "order_not_found"
    default_message = "Order not found."


class CartNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "cart_not_found"
    default_message = "Cart not found."


class CartItemNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "cart_item_not_found"
    default_message = "Cart item not found."


class MissingSellerInfo(ValidationError):
    code = "missing_seller_info"
    default_message = "Every cart line must carry a seller email."


class TotalMismatch(ValidationError):
    code = "total_mismatch"
    default_message = "Declared total does not match the cart total."


class IllegalTransition(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    code = "illegal_transition"
    default_message = "Order status cannot move in that direction."


class PaymentFailed(MarketplaceError):
    code = "payment_failed"
    default_message = "Payment was not completed."


class SignatureMismatch(PaymentFailed):
    # Generic on purpose: never describe which field or key failed.
    default_message = "Payment could not be verified."


class GatewayUnavailable(MarketplaceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "gateway_unavailable"
    default_message = "Payment gateway could not be reached."


class DraftNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "draft_not_found"
    default_message = "No pending payment found for this transaction."


class PartialCheckoutFailure(MarketplaceError):
    status_code = status.HTTP_207_MULTI_STATUS
    code = "partial_checkout_failure"
    default_message = "Some seller orders could not be placed."

    def __init__(self, succeeded_orders, failed_lines, message=None):
        self.succeeded_orders = succeeded_orders
        self.failed_lines = failed_lines
        super().__init__(
            message,
            succeeded_orders=[order.order_number for order in succeeded_orders],
            failed_lines=failed_lines,
        )


def error_response(exc: MarketplaceError) -> Response:
    return Response(exc.as_dict(), status=exc.status_code)
