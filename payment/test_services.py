import base64
import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.db import DatabaseError
from django.test import TestCase, override_settings

from main.exceptions import DraftNotFound, GatewayUnavailable, PaymentFailed, SignatureMismatch, ValidationError
from market.factories import CartFactory
from market.models import Order, PaymentMethod
from market.services import CartService
from producer.factories import ProductFactory

from .esewa import Esewa
from .models import PaymentDraft, PaymentDraftStatus, Transaction
from .services import PaymentReconciler

DELIVERY = {"delivery_address": "Baneshwor, Kathmandu", "phone_number": "+9779841234567"}
SECRET = "8gBm/:&EnhH.1/q"
RESPONSE_FIELDS = "transaction_code,status,total_amount,transaction_uuid,product_code,signed_field_names"


def esewa_callback(transaction_uuid, total_amount, reference="000AWEO", status="COMPLETE", product_code="EPAYTEST"):
    """Base64 callback as eSewa sends it to the success url, signed with the test secret."""
    fields = {
        "transaction_code": reference,
        "status": status,
        "total_amount": total_amount,
        "transaction_uuid": transaction_uuid,
        "product_code": product_code,
        "signed_field_names": RESPONSE_FIELDS,
    }
    message = ",".join(f"{name}={fields[name]}" for name in RESPONSE_FIELDS.split(","))
    digest = hmac.new(SECRET.encode(), message.encode(), hashlib.sha256).digest()
    fields["signature"] = base64.b64encode(digest).decode()
    return {"data": base64.b64encode(json.dumps(fields).encode()).decode()}


@override_settings(DELIVERY_FEE=Decimal("50.00"), ESEWA_SECRET_KEY=SECRET, ESEWA_PRODUCT_CODE="EPAYTEST")
class PaymentReconcilerTest(TestCase):
    def setUp(self):
        self.reconciler = PaymentReconciler()
        self.cart = CartFactory(buyer_email="buyer@x.com")
        self.tomato = ProductFactory(quantity=5, seller_email="s1@x.com", price=Decimal("100.00"))
        rice = ProductFactory(quantity=5, seller_email="s2@x.com", price=Decimal("200.00"))
        CartService().add_item(self.cart, self.tomato.pk, 2)
        CartService().add_item(self.cart, rice.pk, 1)
        self.draft, self.form = self.reconciler.initiate(self.cart, DELIVERY)

    def test_initiate_stages_a_signed_draft(self):
        fields = self.form["fields"]

        self.assertEqual(self.draft.total_amount, Decimal("500.00"))
        self.assertEqual(self.draft.delivery_fee, Decimal("100.00"))
        self.assertEqual(len(self.draft.lines), 2)
        self.assertEqual(fields["total_amount"], "500.00")
        self.assertEqual(fields["amount"], "400.00")
        self.assertEqual(fields["product_delivery_charge"], "100.00")
        self.assertEqual(fields["signed_field_names"], "total_amount,transaction_uuid,product_code")

        message = f"total_amount=500.00,transaction_uuid={self.draft.transaction_uuid},product_code=EPAYTEST"
        expected = base64.b64encode(hmac.new(SECRET.encode(), message.encode(), hashlib.sha256).digest()).decode()
        self.assertEqual(fields["signature"], expected)

    def test_initiating_again_replaces_the_draft(self):
        draft, _ = self.reconciler.initiate(self.cart, DELIVERY)

        self.assertEqual(list(PaymentDraft.objects.values_list("transaction_uuid", flat=True)), [draft.transaction_uuid])

    def test_initiate_rejects_an_empty_cart(self):
        with self.assertRaises(ValidationError):
            self.reconciler.initiate(CartFactory(buyer_email="buyer@x.com"), DELIVERY)

    def test_reconcile_creates_orders_and_one_transaction(self):
        txn, orders = self.reconciler.reconcile(esewa_callback(self.draft.transaction_uuid, "500.0"))

        self.assertEqual([o.seller_email for o in orders], ["s1@x.com", "s2@x.com"])
        self.assertTrue(all(o.payment_method == PaymentMethod.ONLINE for o in orders))
        self.assertTrue(all(o.transaction_id == "000AWEO" for o in orders))
        self.assertEqual(txn.transaction_id, "000AWEO")
        self.assertEqual(txn.amount, Decimal("500.00"))
        self.assertEqual(txn.seller_email, "s1@x.com")
        self.assertEqual(txn.buyer_email, "buyer@x.com")
        self.assertFalse(txn.needs_review)
        self.assertEqual(len(txn.order_details["orders"]), 2)
        self.assertFalse(PaymentDraft.objects.exists())
        self.assertFalse(self.cart.items.exists())

    def test_replayed_callback_is_idempotent(self):
        callback = esewa_callback(self.draft.transaction_uuid, "500.0")

        first, _ = self.reconciler.reconcile(callback)
        second, orders = self.reconciler.reconcile(callback)

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(len(orders), 2)
        self.assertEqual(Transaction.objects.count(), 1)
        self.assertEqual(Order.objects.count(), 2)

    def test_tampered_amount_is_rejected(self):
        callback = esewa_callback(self.draft.transaction_uuid, "1.0")

        with self.assertLogs("payment.services", level="WARNING") as logs:
            with self.assertRaises(SignatureMismatch):
                self.reconciler.reconcile(callback)

        self.assertNotIn(SECRET, "\n".join(logs.output))
        self.assertFalse(Order.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        self.assertTrue(PaymentDraft.objects.filter(pk=self.draft.pk).exists())
        self.assertEqual(self.cart.items.count(), 2)

    def test_signature_from_another_key_is_rejected(self):
        callback = esewa_callback(self.draft.transaction_uuid, "500.0")

        with override_settings(ESEWA_SECRET_KEY="another-secret"):
            with self.assertRaises(SignatureMismatch):
                PaymentReconciler().reconcile(callback)

        self.assertFalse(Order.objects.exists())

    @patch("payment.esewa.requests.get")
    def test_flat_callback_confirmed_by_the_gateway(self, mock_get):
        mock_get.return_value = MagicMock(status_code=200)
        mock_get.return_value.json.return_value = {"status": "COMPLETE", "total_amount": 500.0, "ref_id": "0007ABC"}
        params = {"oid": self.draft.transaction_uuid, "amt": "500.00", "refId": "0007ABC"}

        txn, orders = self.reconciler.reconcile(params)

        self.assertEqual(txn.transaction_id, "0007ABC")
        self.assertEqual(len(orders), 2)
        self.assertEqual(mock_get.call_args.kwargs["params"]["transaction_uuid"], self.draft.transaction_uuid)

    @patch("payment.esewa.requests.get")
    def test_flat_callback_not_completed_at_the_gateway(self, mock_get):
        mock_get.return_value = MagicMock(status_code=200)
        mock_get.return_value.json.return_value = {"status": "PENDING", "total_amount": 500.0, "ref_id": None}
        params = {"oid": self.draft.transaction_uuid, "amt": "500.00", "refId": "0007ABC"}

        with self.assertRaises(SignatureMismatch):
            self.reconciler.reconcile(params)

        self.assertFalse(Order.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        self.assertTrue(PaymentDraft.objects.filter(pk=self.draft.pk).exists())

    @patch("payment.esewa.requests.get", side_effect=requests.ConnectionError("down"))
    def test_flat_callback_when_the_gateway_is_down(self, _):
        params = {"oid": self.draft.transaction_uuid, "amt": "500.00", "refId": "0007ABC"}

        with self.assertRaises(GatewayUnavailable):
            self.reconciler.reconcile(params)

        self.assertFalse(Order.objects.exists())

    @patch("payment.esewa.requests.get")
    def test_flat_callback_with_wrong_amount(self, mock_get):
        params = {"oid": self.draft.transaction_uuid, "amt": "400.00", "refId": "0007ABC"}

        with self.assertRaises(SignatureMismatch):
            self.reconciler.reconcile(params)

        mock_get.assert_not_called()
        self.assertFalse(Order.objects.exists())

    def test_unsigned_payload_is_rejected(self):
        payload = {
            "transaction_uuid": self.draft.transaction_uuid,
            "total_amount": "500.0",
            "status": "COMPLETE",
            "transaction_code": "FORGED",
            "product_code": "EPAYTEST",
        }
        params = {"data": base64.b64encode(json.dumps(payload).encode()).decode()}

        with self.assertRaises(SignatureMismatch):
            self.reconciler.reconcile(params)

        self.assertFalse(Order.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        self.assertEqual(self.cart.items.count(), 2)

    def test_unsigned_payload_without_draft_is_rejected(self):
        payload = {"transaction_uuid": "AGRO-lost", "total_amount": "300.0", "status": "COMPLETE", "transaction_code": "X1"}
        params = {"data": base64.b64encode(json.dumps(payload).encode()).decode()}

        with self.assertRaises(SignatureMismatch):
            self.reconciler.reconcile(params, "buyer@x.com")

        self.assertFalse(Transaction.objects.exists())

    def test_cart_changed_after_initiate_holds_the_payment(self):
        item = self.cart.items.get(listing_id=self.tomato.pk)
        CartService().remove_item(self.cart, item.pk)
        callback = esewa_callback(self.draft.transaction_uuid, "500.0")

        with self.assertRaises(PaymentFailed):
            self.reconciler.reconcile(callback)

        self.tomato.refresh_from_db()
        self.assertEqual(self.tomato.quantity, 5)
        self.assertFalse(Order.objects.exists())
        txn = Transaction.objects.get()
        self.assertTrue(txn.needs_review)
        self.assertEqual(txn.transaction_id, "000AWEO")
        self.assertEqual(len(txn.order_details["lines"]), 2)
        self.draft.refresh_from_db()
        self.assertEqual(self.draft.status, PaymentDraftStatus.FAILED)

        with self.assertRaises(PaymentFailed):
            self.reconciler.reconcile(callback)
        self.assertEqual(Transaction.objects.count(), 1)

    def test_cart_quantity_changed_after_initiate(self):
        item = self.cart.items.get(listing_id=self.tomato.pk)
        CartService().update_quantity(self.cart, item.pk, 1)

        with self.assertRaises(PaymentFailed):
            self.reconciler.reconcile(esewa_callback(self.draft.transaction_uuid, "500.0"))

        self.assertFalse(Order.objects.exists())
        self.assertEqual(self.cart.items.count(), 2)

    def test_another_buyer_cannot_reconcile_the_draft(self):
        with self.assertRaises(DraftNotFound):
            self.reconciler.reconcile(esewa_callback(self.draft.transaction_uuid, "500.0"), "intruder@x.com")

        self.assertFalse(Order.objects.exists())
        self.assertTrue(PaymentDraft.objects.filter(pk=self.draft.pk).exists())

    def test_replay_is_not_shown_to_another_buyer(self):
        callback = esewa_callback(self.draft.transaction_uuid, "500.0")
        self.reconciler.reconcile(callback, "buyer@x.com")

        with self.assertRaises(DraftNotFound):
            self.reconciler.reconcile(callback, "intruder@x.com")

    def test_malformed_callback(self):
        with self.assertRaises(ValidationError):
            self.reconciler.reconcile({"data": "not base64 json"})

    def test_failed_status_keeps_the_draft(self):
        callback = esewa_callback(self.draft.transaction_uuid, "500.0", status="CANCELED")

        with self.assertRaises(PaymentFailed):
            self.reconciler.reconcile(callback)

        self.draft.refresh_from_db()
        self.assertEqual(self.draft.status, PaymentDraftStatus.FAILED)
        self.assertEqual(self.draft.failure_count, 1)
        self.assertEqual(self.cart.items.count(), 2)

    def test_fail_counts_attempts(self):
        self.reconciler.fail(self.draft.transaction_uuid)
        draft = self.reconciler.fail(self.draft.transaction_uuid)

        self.assertEqual(draft.failure_count, 2)

    def test_fail_without_draft(self):
        with self.assertRaises(DraftNotFound):
            self.reconciler.fail("AGRO-unknown")

    def test_payment_without_draft_is_flagged_for_review(self):
        txn, orders = self.reconciler.reconcile(esewa_callback("AGRO-lost", "300.0", reference="0009XYZ"), "buyer@x.com")

        self.assertTrue(txn.needs_review)
        self.assertEqual(txn.amount, Decimal("300.00"))
        self.assertEqual(txn.buyer_email, "buyer@x.com")
        self.assertEqual(orders, [])
        self.assertFalse(Order.objects.exists())

    def test_order_failure_rolls_back_the_payment(self):
        real_create = Order.objects.create
        calls = []

        def create(**kwargs):
            calls.append(kwargs)
            if len(calls) == 2:
                raise DatabaseError("connection lost")
            return real_create(**kwargs)

        with patch.object(Order.objects, "create", side_effect=create):
            with self.assertRaises(PaymentFailed):
                self.reconciler.reconcile(esewa_callback(self.draft.transaction_uuid, "500.0"))

        self.assertFalse(Order.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        self.assertTrue(PaymentDraft.objects.filter(pk=self.draft.pk).exists())

    @patch("payment.esewa.requests.get")
    def test_check_status(self, mock_get):
        mock_get.return_value = MagicMock(status_code=200)
        mock_get.return_value.json.return_value = {"status": "PENDING", "ref_id": None}

        data = self.reconciler.check_status(self.draft.transaction_uuid, "buyer@x.com")

        self.assertEqual(data["gateway_status"], "PENDING")
        self.assertEqual(data["status"], PaymentDraftStatus.PENDING)
        self.assertEqual(mock_get.call_args.kwargs["params"]["total_amount"], "500.00")

    @patch("payment.esewa.requests.get", side_effect=requests.ConnectionError("down"))
    def test_check_status_when_gateway_is_down(self, _):
        with self.assertRaises(GatewayUnavailable):
            self.reconciler.check_status(self.draft.transaction_uuid, "buyer@x.com")

    def test_check_status_of_another_buyer(self):
        with self.assertRaises(DraftNotFound):
            self.reconciler.check_status(self.draft.transaction_uuid, "someone@x.com")


@override_settings(ESEWA_SECRET_KEY=SECRET, ESEWA_PRODUCT_CODE="EPAYTEST")
class EsewaTest(TestCase):
    def test_sign_follows_field_order(self):
        gateway = Esewa()
        fields = {"total_amount": "100", "transaction_uuid": "11-201-13", "product_code": "EPAYTEST"}

        self.assertEqual(
            gateway.sign(fields, "total_amount,transaction_uuid,product_code"),
            "5DZywcrTKD0gia/rsSMcrRHmJl+4Tbol6S+lWgdJ94E=",
        )
        self.assertNotEqual(
            gateway.sign(fields, "transaction_uuid,total_amount,product_code"),
            gateway.sign(fields, "total_amount,transaction_uuid,product_code"),
        )

    def test_decode_base64_callback(self):
        callback = Esewa().decode_callback(esewa_callback("AGRO-1", "1,000.0"))

        self.assertEqual(callback["transaction_uuid"], "AGRO-1")
        self.assertEqual(callback["reference"], "000AWEO")
        self.assertEqual(callback["total_amount"], "1,000.0")
        self.assertTrue(Esewa().is_success(callback))
