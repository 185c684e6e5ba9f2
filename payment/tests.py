from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.test import override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from market.factories import CartFactory
from market.models import Order
from market.services import CartService
from producer.factories import ProductFactory, UserFactory

from .factories import TransactionFactory
from .models import PaymentDraft, Transaction
from .test_services import SECRET, esewa_callback


@override_settings(DELIVERY_FEE=Decimal("50.00"), ESEWA_SECRET_KEY=SECRET, ESEWA_PRODUCT_CODE="EPAYTEST")
class EsewaPaymentAPITestCase(APITestCase):
    def setUp(self):
        self.buyer = UserFactory(username="buyer")
        self.client.force_authenticate(user=self.buyer)
        self.cart = CartFactory(buyer_email=self.buyer.email)
        tomato = ProductFactory(quantity=5, seller_email="s1@x.com", price=Decimal("100.00"))
        rice = ProductFactory(quantity=5, seller_email="s2@x.com", price=Decimal("200.00"))
        CartService().add_item(self.cart, tomato.pk, 2)
        CartService().add_item(self.cart, rice.pk, 1)

    def initiate(self):
        response = self.client.post(
            "/api/v1/payments/esewa/initiate/",
            {"cart_token": str(self.cart.token), "delivery_address": "Lakeside, Pokhara", "phone_number": "+9779841234567"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data

    def test_initiate_returns_signed_form(self):
        data = self.initiate()

        self.assertTrue(data["form_url"].startswith("https://"))
        self.assertEqual(data["fields"]["total_amount"], "500.00")
        self.assertIn("signature", data["fields"])
        self.assertTrue(PaymentDraft.objects.filter(transaction_uuid=data["transaction_uuid"]).exists())

    def test_initiate_for_someone_elses_cart(self):
        self.client.force_authenticate(user=UserFactory(username="intruder"))

        response = self.client.post(
            "/api/v1/payments/esewa/initiate/",
            {"cart_token": str(self.cart.token), "delivery_address": "Lakeside, Pokhara", "phone_number": "+9779841234567"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_success_callback_places_orders(self):
        data = self.initiate()

        response = self.client.get("/api/v1/payments/esewa/success/", esewa_callback(data["transaction_uuid"], "500.0"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["success"])
        self.assertEqual(len(response.data["orders"]), 2)
        self.assertEqual(response.data["transaction"]["transaction_id"], "000AWEO")
        self.assertEqual(self.client.get(f"/api/v1/carts/{self.cart.token}/").data["items"], [])

    def test_success_callback_twice(self):
        data = self.initiate()
        callback = esewa_callback(data["transaction_uuid"], "500.0")

        self.client.get("/api/v1/payments/esewa/success/", callback)
        response = self.client.get("/api/v1/payments/esewa/success/", callback)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Transaction.objects.count(), 1)
        self.assertEqual(Order.objects.count(), 2)

    def test_tampered_callback(self):
        data = self.initiate()

        response = self.client.get("/api/v1/payments/esewa/success/", esewa_callback(data["transaction_uuid"], "10.0"))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "payment_failed")
        self.assertEqual(response.data["message"], "Payment could not be verified.")
        self.assertFalse(Order.objects.exists())

    def test_success_callback_from_another_user(self):
        data = self.initiate()
        self.client.force_authenticate(user=UserFactory(username="intruder"))

        response = self.client.get("/api/v1/payments/esewa/success/", esewa_callback(data["transaction_uuid"], "500.0"))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(Order.objects.exists())
        self.assertTrue(PaymentDraft.objects.filter(transaction_uuid=data["transaction_uuid"]).exists())

    def test_failure_callback_keeps_the_cart(self):
        data = self.initiate()

        response = self.client.get("/api/v1/payments/esewa/failure/", {"transaction_uuid": data["transaction_uuid"]})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["draft"]["failure_count"], 1)
        self.assertEqual(response.data["retry"]["transaction_uuid"], data["transaction_uuid"])
        self.assertEqual(len(self.client.get(f"/api/v1/carts/{self.cart.token}/").data["items"]), 2)

    def test_failure_callback_for_unknown_payment(self):
        response = self.client.get("/api/v1/payments/esewa/failure/", {"transaction_uuid": "AGRO-unknown"})

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    @patch("payment.esewa.requests.get")
    def test_payment_status(self, mock_get):
        mock_get.return_value = MagicMock(status_code=200)
        mock_get.return_value.json.return_value = {"status": "COMPLETE", "ref_id": "000AWEO"}
        data = self.initiate()

        response = self.client.get(f"/api/v1/payments/esewa/status/{data['transaction_uuid']}/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["gateway_status"], "COMPLETE")


class TransactionAPITestCase(APITestCase):
    def setUp(self):
        self.buyer = UserFactory(username="buyer")
        self.seller = UserFactory(username="seller")
        self.transaction = TransactionFactory(buyer_email=self.buyer.email, seller_email=self.seller.email)
        TransactionFactory()

    def test_buyer_and_seller_see_the_transaction(self):
        for user in (self.buyer, self.seller):
            self.client.force_authenticate(user=user)
            response = self.client.get("/api/v1/transactions/")
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual([t["id"] for t in response.data["results"]], [self.transaction.pk])

    def test_only_the_buyer_deletes(self):
        self.client.force_authenticate(user=self.seller)
        response = self.client.delete(f"/api/v1/transactions/{self.transaction.pk}/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.buyer)
        response = self.client.delete(f"/api/v1/transactions/{self.transaction.pk}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Transaction.objects.filter(pk=self.transaction.pk).exists())

    def test_strangers_get_404(self):
        self.client.force_authenticate(user=UserFactory(username="stranger"))

        response = self.client.get(f"/api/v1/transactions/{self.transaction.pk}/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
