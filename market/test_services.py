from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase, override_settings

from main.exceptions import (
    CartNotFound,
    IllegalTransition,
    InsufficientStock,
    MissingSellerInfo,
    OwnershipMismatch,
    PartialCheckoutFailure,
    TotalMismatch,
    ValidationError,
)
from producer.factories import ProductFactory

from .factories import CartFactory, CartItemFactory, OrderFactory
from .models import CartItem, Order, OrderStatus, OrderStatusEvent
from .services import CartService, OrderSplitter, OrderStateMachine

DELIVERY = {"delivery_address": "Baneshwor, Kathmandu", "phone_number": "+9779841234567"}


def line(seller_email, price, quantity, name="item", cart_item_id=None):
    return {
        "cart_item_id": cart_item_id,
        "listing_kind": "product",
        "listing_id": 1,
        "seller_email": seller_email,
        "name": name,
        "image": "",
        "category": "vegetables",
        "price": str(price),
        "quantity": quantity,
    }


def failing_on_call(number):
    """Order.objects.create replacement that raises on the given call."""
    real_create = Order.objects.create
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        if len(calls) == number:
            raise DatabaseError("connection lost")
        return real_create(**kwargs)

    return create


@override_settings(DELIVERY_FEE=Decimal("50.00"))
class OrderSplitterTest(TestCase):
    def setUp(self):
        self.splitter = OrderSplitter()

    def test_one_order_per_seller(self):
        lines = [line("a@x.com", 100, 2, "rice"), line("b@x.com", 200, 1, "maize")]

        orders = self.splitter.checkout(lines, "buyer@x.com", DELIVERY)

        self.assertEqual(len(orders), 2)
        self.assertEqual(
            [(o.seller_email, o.subtotal, o.total_amount) for o in orders],
            [("a@x.com", Decimal("200.00"), Decimal("250.00")), ("b@x.com", Decimal("200.00"), Decimal("250.00"))],
        )
        self.assertEqual(orders[0].items[0]["name"], "rice")
        self.assertEqual(orders[0].delivery_fee, Decimal("50.00"))
        self.assertTrue(all(o.order_number.startswith("ORDER-") for o in orders))
        self.assertNotEqual(orders[0].order_number, orders[1].order_number)

    def test_subtotals_add_up_and_groups_keep_first_appearance_order(self):
        lines = [
            line("b@x.com", 10, 3),
            line("a@x.com", 25, 1),
            line("b@x.com", 40, 2),
            line("c@x.com", 5, 10),
        ]

        orders = self.splitter.checkout(lines, "buyer@x.com", DELIVERY, order_type="product")

        self.assertEqual([o.seller_email for o in orders], ["b@x.com", "a@x.com", "c@x.com"])
        self.assertEqual(sum(o.subtotal for o in orders), Decimal("185.00"))
        self.assertEqual(len(orders[0].items), 2)

    def test_missing_seller_aborts_everything(self):
        lines = [line("a@x.com", 100, 1), line("", 100, 1)]

        with self.assertRaises(MissingSellerInfo):
            self.splitter.checkout(lines, "buyer@x.com", DELIVERY)
        self.assertFalse(Order.objects.exists())

    def test_rejects_non_positive_price_or_quantity(self):
        with self.assertRaises(ValidationError):
            self.splitter.checkout([line("a@x.com", 0, 1)], "buyer@x.com", DELIVERY)
        with self.assertRaises(ValidationError):
            self.splitter.checkout([line("a@x.com", 10, 0)], "buyer@x.com", DELIVERY)
        with self.assertRaises(ValidationError):
            self.splitter.checkout([], "buyer@x.com", DELIVERY)

    def test_sub_cent_drift_is_corrected(self):
        lines = [line("a@x.com", 100, 2), line("b@x.com", 200, 1)]

        self.assertEqual(self.splitter.reconcile_total(lines, "500.004"), Decimal("500.00"))
        orders = self.splitter.checkout(lines, "buyer@x.com", DELIVERY, declared_total="499.995")
        self.assertEqual(sum(o.total_amount for o in orders), Decimal("500.00"))

    def test_tampered_total_is_rejected(self):
        lines = [line("a@x.com", 100, 2)]

        with self.assertRaises(TotalMismatch):
            self.splitter.checkout(lines, "buyer@x.com", DELIVERY, declared_total="100.00")
        self.assertFalse(Order.objects.exists())

    def test_partial_failure_reports_failed_lines(self):
        lines = [line("a@x.com", 100, 1, "first"), line("b@x.com", 100, 1, "second"), line("c@x.com", 100, 1, "third")]

        with patch.object(Order.objects, "create", side_effect=failing_on_call(2)):
            with self.assertRaises(PartialCheckoutFailure) as ctx:
                self.splitter.checkout(lines, "buyer@x.com", DELIVERY)

        self.assertEqual([o.seller_email for o in ctx.exception.succeeded_orders], ["a@x.com"])
        self.assertEqual([item["name"] for item in ctx.exception.failed_lines], ["second", "third"])
        self.assertEqual(Order.objects.count(), 1)

    def test_storage_failure_on_first_group_propagates(self):
        with patch.object(Order.objects, "create", side_effect=failing_on_call(1)):
            with self.assertRaises(DatabaseError):
                self.splitter.checkout([line("a@x.com", 100, 1)], "buyer@x.com", DELIVERY)


class OrderStateMachineTest(TestCase):
    def setUp(self):
        self.machine = OrderStateMachine()
        self.order = OrderFactory(seller_email="seller@x.com", buyer_email="buyer@x.com")
        self.created_at = self.order.created_at

    def test_forward_transition_records_history(self):
        order = self.machine.transition(self.order.pk, OrderStatus.PROCESSING, actor_email="seller@x.com")

        self.assertEqual(order.status, OrderStatus.PROCESSING)
        self.assertIn(OrderStatus.PROCESSING, order.status_times)
        event = OrderStatusEvent.objects.get(order=order)
        self.assertEqual((event.from_status, event.to_status), (OrderStatus.PENDING, OrderStatus.PROCESSING))

    def test_skip_to_delivered_synthesizes_ordered_timestamps(self):
        delivered_at = self.created_at + timedelta(hours=5)
        order = self.machine.transition(self.order.pk, OrderStatus.DELIVERED, occurred_at=delivered_at)

        timeline = {entry["status"]: entry for entry in self.machine.timeline(order)}

        self.assertEqual(timeline["pending"]["timestamp"], self.created_at)
        self.assertEqual(timeline["delivered"]["timestamp"], delivered_at)
        self.assertFalse(timeline["pending"]["synthetic"])
        self.assertFalse(timeline["delivered"]["synthetic"])
        self.assertTrue(timeline["processing"]["synthetic"])
        self.assertTrue(timeline["shipping"]["synthetic"])
        self.assertEqual(timeline["shipping"]["timestamp"], delivered_at - timedelta(milliseconds=100))
        self.assertEqual(timeline["processing"]["timestamp"], delivered_at - timedelta(milliseconds=200))

        times = [timeline[s]["timestamp"] for s in ("pending", "processing", "shipping", "delivered")]
        self.assertEqual(times, sorted(times))

    def test_synthetic_timestamps_stay_after_previous_state_on_tight_gaps(self):
        delivered_at = self.created_at + timedelta(milliseconds=150)
        order = self.machine.transition(self.order.pk, OrderStatus.DELIVERED, occurred_at=delivered_at)

        times = [entry["timestamp"] for entry in self.machine.timeline(order)]

        self.assertEqual(len(times), 4)
        self.assertTrue(all(earlier < later for earlier, later in zip(times, times[1:])))

    def test_real_times_are_kept_for_entered_states(self):
        processing_at = self.created_at + timedelta(hours=1)
        delivered_at = self.created_at + timedelta(hours=3)
        self.machine.transition(self.order.pk, OrderStatus.PROCESSING, occurred_at=processing_at)
        order = self.machine.transition(self.order.pk, OrderStatus.DELIVERED, occurred_at=delivered_at)

        timeline = {entry["status"]: entry for entry in self.machine.timeline(order)}

        self.assertEqual(timeline["processing"]["timestamp"], processing_at)
        self.assertFalse(timeline["processing"]["synthetic"])
        self.assertEqual(timeline["shipping"]["timestamp"], delivered_at - timedelta(milliseconds=100))

    def test_pending_timestamp_never_changes(self):
        for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPING, OrderStatus.DELIVERED):
            order = self.machine.transition(self.order.pk, status)
            self.assertEqual(self.machine.timeline(order)[0]["timestamp"], self.created_at)
        order.refresh_from_db()
        self.assertEqual(order.created_at, self.created_at)

    def test_delivered_is_terminal(self):
        self.machine.transition(self.order.pk, OrderStatus.DELIVERED)

        for status in (OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPING, OrderStatus.DELIVERED):
            with self.assertRaises(IllegalTransition):
                self.machine.transition(self.order.pk, status)

    def test_backward_transition_is_illegal(self):
        self.machine.transition(self.order.pk, OrderStatus.SHIPPING)

        with self.assertRaises(IllegalTransition):
            self.machine.transition(self.order.pk, OrderStatus.PROCESSING)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.SHIPPING)

    def test_only_the_orders_seller_may_transition(self):
        with self.assertRaises(OwnershipMismatch):
            self.machine.transition(self.order.pk, OrderStatus.PROCESSING, seller_email="other@x.com")

        order = self.machine.transition(self.order.pk, OrderStatus.PROCESSING, seller_email="SELLER@x.com")
        self.assertEqual(order.status, OrderStatus.PROCESSING)

    def test_unknown_status(self):
        with self.assertRaises(ValidationError):
            self.machine.transition(self.order.pk, "lost")

    def test_cancel_pending_order_keeps_the_row(self):
        order = self.machine.cancel(self.order.pk, "buyer@x.com")

        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertIsNotNone(order.cancelled_at)
        self.assertTrue(Order.objects.filter(pk=self.order.pk).exists())
        self.assertEqual([e["status"] for e in self.machine.timeline(order)], ["pending", "cancelled"])

    def test_cancel_rules(self):
        with self.assertRaises(OwnershipMismatch):
            self.machine.cancel(self.order.pk, "someone@x.com")

        self.machine.transition(self.order.pk, OrderStatus.PROCESSING)
        with self.assertRaises(IllegalTransition):
            self.machine.cancel(self.order.pk, "buyer@x.com")

    def test_estimated_delivery(self):
        self.assertEqual(self.order.estimated_delivery, self.created_at + timedelta(days=7))

        order = self.machine.transition(self.order.pk, OrderStatus.SHIPPING)
        self.assertEqual(order.estimated_delivery, order.updated_at + timedelta(days=2))

        order = self.machine.transition(self.order.pk, OrderStatus.DELIVERED)
        self.assertEqual(order.estimated_delivery, order.updated_at)


class CartServiceTest(TestCase):
    def setUp(self):
        self.service = CartService()
        self.cart = CartFactory(buyer_email="buyer@x.com")
        self.product = ProductFactory(quantity=5, seller_email="s1@x.com", price=Decimal("100.00"))

    def test_add_then_remove_restores_stock(self):
        item = self.service.add_item(self.cart, self.product.pk, 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 2)
        self.assertEqual(item.seller_email, "s1@x.com")
        self.assertEqual(item.unit_price, Decimal("100.00"))

        self.service.remove_item(self.cart, item.pk)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)
        self.assertFalse(self.cart.items.exists())

    def test_adding_twice_merges_the_line(self):
        self.service.add_item(self.cart, self.product.pk, 1)
        item = self.service.add_item(self.cart, self.product.pk, 2)

        self.assertEqual(item.quantity, 3)
        self.assertEqual(self.cart.items.count(), 1)

    def test_update_quantity_applies_the_delta(self):
        item = self.service.add_item(self.cart, self.product.pk, 2)

        self.service.update_quantity(self.cart, item.pk, 4)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 1)

        item = self.service.update_quantity(self.cart, item.pk, 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 4)
        self.assertEqual(item.quantity, 1)

    def test_update_beyond_stock_keeps_cart_and_stock(self):
        item = self.service.add_item(self.cart, self.product.pk, 2)

        with self.assertRaises(InsufficientStock):
            self.service.update_quantity(self.cart, item.pk, 9)

        item.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(item.quantity, 2)
        self.assertEqual(self.product.quantity, 3)

    def test_insufficient_stock_leaves_cart_empty(self):
        with self.assertRaises(InsufficientStock):
            self.service.add_item(self.cart, self.product.pk, 6)
        self.assertFalse(self.cart.items.exists())

    def test_replayed_add_does_not_double_reserve(self):
        self.service.add_item(self.cart, self.product.pk, 2, idempotency_key="add-1")
        item = self.service.add_item(self.cart, self.product.pk, 2, idempotency_key="add-1")

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 3)
        self.assertEqual(item.quantity, 2)

    def test_replayed_add_after_removal_returns_none(self):
        item = self.service.add_item(self.cart, self.product.pk, 2, idempotency_key="add-1")
        self.service.remove_item(self.cart, item.pk)

        self.assertIsNone(self.service.add_item(self.cart, self.product.pk, 2, idempotency_key="add-1"))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)

    def test_holds_matches_the_reserved_lines(self):
        item = self.service.add_item(self.cart, self.product.pk, 2)
        lines = self.cart.as_lines()

        self.assertTrue(self.service.holds(self.cart, lines))

        self.service.update_quantity(self.cart, item.pk, 1)
        self.assertFalse(self.service.holds(self.cart, lines))

        self.service.remove_item(self.cart, item.pk)
        self.assertFalse(self.service.holds(self.cart, lines))

    def test_replayed_remove_is_a_no_op(self):
        item = self.service.add_item(self.cart, self.product.pk, 2)
        self.service.remove_item(self.cart, item.pk, idempotency_key="rm-1")
        self.service.remove_item(self.cart, item.pk, idempotency_key="rm-1")

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)

    def test_same_key_in_another_cart_is_independent(self):
        other_cart = CartFactory(buyer_email="other@x.com")
        self.service.add_item(self.cart, self.product.pk, 1, idempotency_key="k")
        self.service.add_item(other_cart, self.product.pk, 1, idempotency_key="k")

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 3)

    def test_wrong_seller_context(self):
        with self.assertRaises(OwnershipMismatch):
            self.service.add_item(self.cart, self.product.pk, 1, expected_seller_email="stale@x.com")

    def test_cart_visible_only_to_its_buyer(self):
        self.assertEqual(self.service.get_cart(self.cart.token, "buyer@x.com"), self.cart)
        with self.assertRaises(CartNotFound):
            self.service.get_cart(self.cart.token, "intruder@x.com")
        with self.assertRaises(CartNotFound):
            self.service.get_cart("not-a-uuid", "buyer@x.com")

    def test_checkout_clears_the_cart(self):
        other = ProductFactory(quantity=5, seller_email="s2@x.com", price=Decimal("200.00"))
        self.service.add_item(self.cart, self.product.pk, 2)
        self.service.add_item(self.cart, other.pk, 1)

        orders = self.service.checkout(self.cart, DELIVERY, declared_total="500.00")

        self.assertEqual(len(orders), 2)
        self.assertFalse(self.cart.items.exists())
        self.assertEqual({o.order_type for o in orders}, {"product"})

    def test_partial_checkout_keeps_only_failed_lines(self):
        CartItemFactory(cart=self.cart, seller_email="a@x.com", name="first")
        failed = CartItemFactory(cart=self.cart, seller_email="b@x.com", name="second")

        with patch.object(Order.objects, "create", side_effect=failing_on_call(2)):
            with self.assertRaises(PartialCheckoutFailure):
                self.service.checkout(self.cart, DELIVERY)

        self.assertEqual(list(CartItem.objects.filter(cart=self.cart)), [failed])
        self.assertEqual(Order.objects.get().seller_email, "a@x.com")
