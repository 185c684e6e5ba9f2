import logging
import uuid
from collections import OrderedDict
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from main.exceptions import (
    CartItemNotFound,
    CartNotFound,
    IllegalTransition,
    MissingSellerInfo,
    OrderNotFound,
    OwnershipMismatch,
    PartialCheckoutFailure,
    TotalMismatch,
    ValidationError,
)
from producer.models import StockAdjustment
from producer.services import InventoryLedger

from .models import Cart, CartItem, Order, OrderStatus, OrderStatusEvent, PaymentMethod
from .tasks import notify_order_placed, notify_order_status_changed

logger = logging.getLogger(__name__)


def generate_order_number(discriminator) -> str:
    millis = int(timezone.now().timestamp() * 1000)
    return f"ORDER-{millis}-{discriminator}{uuid.uuid4().hex[:6].upper()}"


class OrderSplitter:
    """
    Turns a multi-seller cart into one order per seller.

    Each seller group is persisted in its own transaction. A failure stops checkout
    at that group; earlier groups stay committed and are reported back through
    ``PartialCheckoutFailure`` so the caller can trim the cart to the failed lines.
    Inventory is not touched here, it was reserved when the lines entered the cart.
    """

    @property
    def delivery_fee(self) -> Decimal:
        return Decimal(str(settings.DELIVERY_FEE))

    def validate_lines(self, lines: List[dict]) -> None:
        if not lines:
            raise ValidationError("Cart is empty.")
        for line in lines:
            try:
                price = Decimal(str(line.get("price")))
                quantity = int(line.get("quantity"))
            except (InvalidOperation, TypeError, ValueError) as e:
                raise ValidationError(f"Invalid price or quantity for {line.get('name', 'item')}.") from e
            if price <= 0 or quantity <= 0:
                raise ValidationError(f"Price and quantity must be greater than zero for {line.get('name', 'item')}.")
            if not line.get("seller_email"):
                logger.warning(f"Checkout rejected: line {line.get('name')} has no seller email")
                raise MissingSellerInfo(f"Seller information is missing for {line.get('name', 'an item')}.")

    def group_by_seller(self, lines: List[dict]) -> "OrderedDict[str, List[dict]]":
        groups = OrderedDict()
        for line in lines:
            groups.setdefault(line["seller_email"].lower(), []).append(line)
        return groups

    def line_total(self, line) -> Decimal:
        return Decimal(str(line["price"])) * int(line["quantity"])

    def subtotal(self, lines: List[dict]) -> Decimal:
        return sum((self.line_total(line) for line in lines), Decimal("0.00"))

    def server_total(self, lines: List[dict]) -> Decimal:
        groups = self.group_by_seller(lines)
        return self.subtotal(lines) + self.delivery_fee * len(groups)

    def reconcile_total(self, lines: List[dict], declared_total=None) -> Decimal:
        """
        Server total for ``lines``. Sub-cent drift in ``declared_total`` is corrected to the
        server value; anything larger is treated as tampering.
        """
        server_total = self.server_total(lines)
        if declared_total in (None, ""):
            return server_total
        try:
            declared = Decimal(str(declared_total))
        except InvalidOperation as e:
            raise ValidationError("Invalid total amount.") from e

        tolerance = Decimal(str(settings.CHECKOUT_TOTAL_TOLERANCE))
        if abs(declared - server_total) > tolerance:
            logger.warning(f"Checkout total mismatch: declared {declared}, server {server_total}")
            raise TotalMismatch(declared_total=str(declared), server_total=str(server_total))
        return server_total

    def _snapshot(self, line) -> dict:
        return {
            "listing_id": line.get("listing_id"),
            "name": line.get("name"),
            "price": str(Decimal(str(line["price"]))),
            "quantity": int(line["quantity"]),
            "image": line.get("image", ""),
            "category": line.get("category", ""),
        }

    def checkout(
        self,
        lines: List[dict],
        buyer_email: str,
        delivery_info: Dict[str, str],
        payment_method: str = PaymentMethod.CASH,
        order_type: Optional[str] = None,
        declared_total=None,
        transaction_id: str = "",
    ) -> List[Order]:
        self.validate_lines(lines)
        self.reconcile_total(lines, declared_total)

        orders, failed_lines = [], []
        groups = list(self.group_by_seller(lines).values())
        error = None
        for index, group in enumerate(groups):
            subtotal = self.subtotal(group)
            try:
                with transaction.atomic():
                    order = Order.objects.create(
                        order_number=generate_order_number(index + 1),
                        items=[self._snapshot(line) for line in group],
                        subtotal=subtotal,
                        delivery_fee=self.delivery_fee,
                        total_amount=subtotal + self.delivery_fee,
                        buyer_email=buyer_email,
                        seller_email=group[0]["seller_email"],
                        order_type=order_type or group[0].get("listing_kind", ""),
                        delivery_address=delivery_info["delivery_address"],
                        phone_number=delivery_info["phone_number"],
                        payment_method=payment_method,
                        transaction_id=transaction_id or "",
                    )
            except DatabaseError as e:
                logger.error(f"Order creation failed for seller {group[0]['seller_email']} (buyer {buyer_email}): {e}")
                error = e
                failed_lines = [line for remaining in groups[index:] for line in remaining]
                break

            logger.info(f"Order {order.order_number} created for seller {order.seller_email}, total {order.total_amount}")
            transaction.on_commit(lambda pk=order.pk: notify_order_placed.delay(pk))
            orders.append(order)

        if failed_lines:
            if not orders:
                raise error
            raise PartialCheckoutFailure(orders, failed_lines)
        return orders


class OrderStateMachine:
    """
    Forward-only delivery progression: Pending, Processing, Shipping, Delivered.

    Sellers may skip intermediate states. A Pending order may also be cancelled by its
    buyer; Delivered and Cancelled are terminal.
    """

    def _lock(self, order_id) -> Order:
        try:
            return Order.objects.select_for_update().get(pk=order_id)
        except Order.DoesNotExist:
            raise OrderNotFound()

    @transaction.atomic
    def transition(self, order_id, new_status, occurred_at=None, actor_email: str = "", seller_email=None) -> Order:
        if new_status not in OrderStatus.values:
            raise ValidationError(f"Invalid order status: {new_status}")
        new_status = OrderStatus(new_status).value

        order = self._lock(order_id)
        if seller_email is not None and order.seller_email.lower() != seller_email.lower():
            logger.warning(f"{seller_email} tried to update order {order.order_number} owned by {order.seller_email}")
            raise OwnershipMismatch("Only the seller of this order can update its status.")

        previous = order.status
        if new_status not in OrderStatus.get_next_allowed_statuses(previous):
            logger.warning(f"Illegal transition for order {order.order_number}: {previous} -> {new_status}")
            raise IllegalTransition(f"Cannot change order status from {previous} to {new_status}.")

        occurred_at = occurred_at or timezone.now()
        if occurred_at < max(order.updated_at, order.created_at):
            raise ValidationError("Status change time cannot be earlier than the last update.")

        order.status = new_status
        order.updated_at = occurred_at
        order.status_times = {**(order.status_times or {}), new_status: occurred_at.isoformat()}
        if new_status == OrderStatus.CANCELLED:
            order.cancelled_at = occurred_at
        order.save(update_fields=["status", "updated_at", "status_times", "cancelled_at"])

        OrderStatusEvent.objects.create(
            order=order, from_status=previous, to_status=new_status, occurred_at=occurred_at, actor_email=actor_email or ""
        )
        logger.info(f"Order {order.order_number} moved {previous} -> {new_status} by {actor_email or 'system'}")
        transaction.on_commit(lambda: notify_order_status_changed.delay(order.pk, previous))
        return order

    def cancel(self, order_id, buyer_email: str, occurred_at=None) -> Order:
        """Cancel a Pending order on behalf of its buyer. Reserved stock is not released."""
        with transaction.atomic():
            order = self._lock(order_id)
            if order.buyer_email.lower() != buyer_email.lower():
                raise OwnershipMismatch("Only the buyer of this order can cancel it.")
            if not order.can_cancel():
                logger.warning(f"Cancel refused for order {order.order_number} in status {order.status}")
                raise IllegalTransition("Only pending orders can be cancelled.")
            return self.transition(order_id, OrderStatus.CANCELLED, occurred_at=occurred_at, actor_email=buyer_email)

    def timeline(self, order: Order) -> List[dict]:
        """
        Display timestamp per reached status.

        Pending always shows ``created_at``. Each other reached status shows the time it was
        most recently entered. Skipped states get synthetic times backdated from the next
        known time, for display only.
        """
        entries = []

        def entry(status, timestamp, synthetic=False):
            return {
                "status": status,
                "label": OrderStatus(status).label,
                "timestamp": timestamp,
                "synthetic": synthetic,
            }

        if order.status == OrderStatus.CANCELLED:
            entries.append(entry(OrderStatus.PENDING, order.created_at))
            entries.append(entry(OrderStatus.CANCELLED, order.cancelled_at or order.updated_at))
            return entries

        flow = OrderStatus.progression()
        reached = flow[: flow.index(order.status) + 1]

        known = {OrderStatus.PENDING: order.created_at}
        for status in reached[1:]:
            recorded = (order.status_times or {}).get(status)
            if recorded:
                known[status] = parse_datetime(recorded)
        if order.status != OrderStatus.PENDING:
            known.setdefault(order.status, order.updated_at)

        times = dict(known)
        backdate = timedelta(milliseconds=settings.ORDER_STATUS_BACKDATE_MS)
        lower = 0
        for upper in range(1, len(reached)):
            if reached[upper] not in known:
                continue
            skipped = upper - lower - 1
            if skipped:
                low_time, high_time = known[reached[lower]], known[reached[upper]]
                step = max(min(backdate, (high_time - low_time) / (skipped + 1)), timedelta(0))
                for offset in range(1, skipped + 1):
                    times[reached[upper - offset]] = high_time - step * offset
            lower = upper

        for status in reached:
            entries.append(entry(status, times[status], synthetic=status not in known))
        return entries


class CartService:
    """
    Server-owned cart. Adding, editing and removing lines reserve or release stock
    through the inventory ledger; a replayed idempotency key leaves the cart unchanged.
    """

    def __init__(self, ledger: Optional[InventoryLedger] = None):
        self.ledger = ledger or InventoryLedger()

    def create_cart(self, buyer_email, kind) -> Cart:
        cart = Cart.objects.create(buyer_email=buyer_email, kind=kind)
        logger.info(f"Cart {cart.token} created for {buyer_email}")
        return cart

    def get_cart(self, token, buyer_email) -> Cart:
        try:
            cart = Cart.objects.get(token=token)
        except (Cart.DoesNotExist, DjangoValidationError):
            raise CartNotFound()
        if cart.buyer_email.lower() != (buyer_email or "").lower():
            raise CartNotFound()
        return cart

    def _scoped_key(self, cart, idempotency_key):
        if not idempotency_key:
            return None
        return f"cart:{cart.token}:{idempotency_key}"

    def _is_replay(self, key) -> bool:
        return bool(key) and StockAdjustment.objects.filter(idempotency_key=key).exists()

    def _lock_item(self, cart, item_id) -> CartItem:
        try:
            return CartItem.objects.select_for_update().get(pk=item_id, cart=cart)
        except CartItem.DoesNotExist:
            raise CartItemNotFound()

    @transaction.atomic
    def add_item(
        self, cart, listing_id, quantity, expected_seller_email=None, idempotency_key=None
    ) -> Optional[CartItem]:
        """Reserve and add a line. A replayed key returns the current line, or None if it was removed since."""
        key = self._scoped_key(cart, idempotency_key)
        if self._is_replay(key):
            logger.info(f"Replayed add to cart {cart.token} with key {idempotency_key}")
            return cart.items.filter(listing_kind=cart.kind, listing_id=listing_id).first()

        listing, applied = self.ledger.apply(
            cart.kind, listing_id, quantity, self.ledger.DECREASE, expected_seller_email, key
        )
        if not applied:
            return cart.items.filter(listing_kind=cart.kind, listing_id=listing_id).first()

        item, created = CartItem.objects.select_for_update().get_or_create(
            cart=cart,
            listing_kind=cart.kind,
            listing_id=listing.pk,
            defaults={
                "seller_email": listing.seller_email,
                "name": listing.name,
                "image": listing.image,
                "category": listing.category,
                "unit_price": listing.price,
                "quantity": quantity,
            },
        )
        if not created:
            CartItem.objects.filter(pk=item.pk).update(quantity=F("quantity") + int(quantity))
            item.refresh_from_db()
        return item

    @transaction.atomic
    def update_quantity(self, cart, item_id, quantity, idempotency_key=None) -> CartItem:
        quantity = int(quantity)
        if quantity < 1:
            raise ValidationError("Cart quantity must be at least 1.")

        key = self._scoped_key(cart, idempotency_key)
        item = self._lock_item(cart, item_id)
        if self._is_replay(key):
            logger.info(f"Replayed quantity change on cart {cart.token} with key {idempotency_key}")
            return item

        delta = quantity - item.quantity
        if delta == 0:
            return item

        direction = self.ledger.DECREASE if delta > 0 else self.ledger.INCREASE
        _, applied = self.ledger.apply(item.listing_kind, item.listing_id, abs(delta), direction, None, key)
        if applied:
            item.quantity = quantity
            item.save(update_fields=["quantity"])
        return item

    @transaction.atomic
    def remove_item(self, cart, item_id, idempotency_key=None) -> None:
        key = self._scoped_key(cart, idempotency_key)
        if self._is_replay(key):
            logger.info(f"Replayed removal on cart {cart.token} with key {idempotency_key}")
            return

        item = self._lock_item(cart, item_id)
        _, applied = self.ledger.apply(
            item.listing_kind, item.listing_id, item.quantity, self.ledger.INCREASE, None, key
        )
        if applied:
            item.delete()

    @transaction.atomic
    def holds(self, cart, lines: List[dict]) -> bool:
        """Whether the cart still reserves exactly ``lines``. Locks the matching cart items."""
        ids = [line.get("cart_item_id") for line in lines]
        items = {item.pk: item for item in CartItem.objects.select_for_update().filter(cart=cart, pk__in=ids)}
        for line in lines:
            item = items.get(line.get("cart_item_id"))
            if (
                item is None
                or item.listing_kind != line["listing_kind"]
                or item.listing_id != line["listing_id"]
                or item.quantity != int(line["quantity"])
            ):
                return False
        return True

    def trim(self, cart, lines: List[dict]) -> None:
        """Drop the cart items behind ``lines`` (already turned into orders)."""
        ids = [line["cart_item_id"] for line in lines if line.get("cart_item_id")]
        CartItem.objects.filter(cart=cart, pk__in=ids).delete()

    def checkout(self, cart, delivery_info, payment_method=PaymentMethod.CASH, declared_total=None) -> List[Order]:
        lines = cart.as_lines()
        try:
            orders = OrderSplitter().checkout(
                lines,
                cart.buyer_email,
                delivery_info,
                payment_method=payment_method,
                order_type=cart.kind,
                declared_total=declared_total,
            )
        except PartialCheckoutFailure as e:
            failed_ids = {line["cart_item_id"] for line in e.failed_lines}
            self.trim(cart, [line for line in lines if line["cart_item_id"] not in failed_ids])
            raise

        cart.items.all().delete()
        logger.info(f"Cart {cart.token} checked out into {len(orders)} order(s)")
        return orders
