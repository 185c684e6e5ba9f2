from decimal import Decimal

from django.test import override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from producer.factories import ProductFactory, UserFactory

from .factories import CartFactory, OrderFactory
from .models import Order, OrderStatus


@override_settings(DELIVERY_FEE=Decimal("50.00"))
class CartAPITestCase(APITestCase):
    def setUp(self):
        self.buyer = UserFactory(username="buyer")
        self.client.force_authenticate(user=self.buyer)
        self.product = ProductFactory(quantity=5, seller_email="s1@x.com", price=Decimal("100.00"))

    def create_cart(self):
        response = self.client.post("/api/v1/carts/", {"kind": "product"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data["token"]

    def test_add_and_remove_item(self):
        token = self.create_cart()

        response = self.client.post(
            f"/api/v1/carts/{token}/items/", {"listing_id": self.product.pk, "quantity": 3}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["items"][0]["quantity"], 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 2)

        item_id = response.data["items"][0]["id"]
        response = self.client.delete(f"/api/v1/carts/{token}/items/{item_id}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)

    def test_add_more_than_available(self):
        token = self.create_cart()

        response = self.client.post(
            f"/api/v1/carts/{token}/items/", {"listing_id": self.product.pk, "quantity": 6}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "insufficient_stock")
        self.assertFalse(response.data["success"])

    def test_update_quantity_with_idempotency_header(self):
        token = self.create_cart()
        response = self.client.post(
            f"/api/v1/carts/{token}/items/", {"listing_id": self.product.pk, "quantity": 1}, format="json"
        )
        url = f"/api/v1/carts/{token}/items/{response.data['items'][0]['id']}/"

        for _ in range(2):
            response = self.client.patch(url, {"quantity": 3}, format="json", HTTP_IDEMPOTENCY_KEY="edit-1")
            self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.assertEqual(response.data["quantity"], 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 2)

    def test_other_buyers_cannot_see_the_cart(self):
        token = self.create_cart()
        self.client.force_authenticate(user=UserFactory(username="intruder"))

        response = self.client.get(f"/api/v1/carts/{token}/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_checkout_splits_by_seller(self):
        other = ProductFactory(quantity=5, seller_email="s2@x.com", price=Decimal("200.00"))
        token = self.create_cart()
        self.client.post(f"/api/v1/carts/{token}/items/", {"listing_id": self.product.pk, "quantity": 2}, format="json")
        self.client.post(f"/api/v1/carts/{token}/items/", {"listing_id": other.pk, "quantity": 1}, format="json")

        response = self.client.post(
            f"/api/v1/carts/{token}/checkout/",
            {"delivery_address": "Lakeside, Pokhara", "phone_number": "+9779841234567", "total_amount": "500.00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        orders = response.data["orders"]
        self.assertEqual([o["seller_email"] for o in orders], ["s1@x.com", "s2@x.com"])
        self.assertEqual([o["total_amount"] for o in orders], ["250.00", "250.00"])
        self.assertTrue(all(o["payment_method"] == "cash" for o in orders))
        self.assertEqual(self.client.get(f"/api/v1/carts/{token}/").data["items"], [])

    def test_checkout_with_tampered_total(self):
        token = self.create_cart()
        self.client.post(f"/api/v1/carts/{token}/items/", {"listing_id": self.product.pk, "quantity": 2}, format="json")

        response = self.client.post(
            f"/api/v1/carts/{token}/checkout/",
            {"delivery_address": "Lakeside, Pokhara", "phone_number": "+9779841234567", "total_amount": "1.00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "total_mismatch")
        self.assertFalse(Order.objects.exists())
        self.assertEqual(len(self.client.get(f"/api/v1/carts/{token}/").data["items"]), 1)

    def test_checkout_empty_cart(self):
        cart = CartFactory(buyer_email=self.buyer.email)

        response = self.client.post(
            f"/api/v1/carts/{cart.token}/checkout/",
            {"delivery_address": "Lakeside, Pokhara", "phone_number": "+9779841234567"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class OrderAPITestCase(APITestCase):
    def setUp(self):
        self.seller = UserFactory(username="seller")
        self.buyer = UserFactory(username="buyer")
        self.order = OrderFactory(seller_email=self.seller.email, buyer_email=self.buyer.email)

    def test_buyer_and_seller_lists(self):
        OrderFactory(buyer_email=self.buyer.email, status=OrderStatus.DELIVERED)
        OrderFactory()

        self.client.force_authenticate(user=self.buyer)
        response = self.client.get("/api/v1/orders/buyer/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["results"]), 2)

        response = self.client.get("/api/v1/orders/buyer/", {"status": "pending"})
        self.assertEqual(len(response.data["results"]), 1)

        self.client.force_authenticate(user=self.seller)
        response = self.client.get("/api/v1/orders/seller/")
        self.assertEqual([o["order_number"] for o in response.data["results"]], [self.order.order_number])

    def test_seller_updates_status(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.post(f"/api/v1/orders/{self.order.pk}/status/", {"status": "delivered"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "delivered")

        response = self.client.post(f"/api/v1/orders/{self.order.pk}/status/", {"status": "shipping"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "illegal_transition")

    def test_buyer_cannot_update_status(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(f"/api/v1/orders/{self.order.pk}/status/", {"status": "processing"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_seller_cannot_cancel_through_status_update(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.post(f"/api/v1/orders/{self.order.pk}/status/", {"status": "cancelled"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_timeline(self):
        self.client.force_authenticate(user=self.seller)
        self.client.post(f"/api/v1/orders/{self.order.pk}/status/", {"status": "delivered"}, format="json")

        response = self.client.get(f"/api/v1/orders/{self.order.pk}/timeline/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [(e["status"], e["synthetic"]) for e in response.data["timeline"]],
            [("pending", False), ("processing", True), ("shipping", True), ("delivered", False)],
        )
        self.assertEqual(len(response.data["history"]), 1)

    def test_buyer_cancels_pending_order(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.delete(f"/api/v1/orders/{self.order.pk}/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.CANCELLED)

    def test_seller_cannot_cancel(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.delete(f"/api/v1/orders/{self.order.pk}/")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cancel_after_processing_is_refused(self):
        self.order.status = OrderStatus.PROCESSING
        self.order.save()
        self.client.force_authenticate(user=self.buyer)

        response = self.client.delete(f"/api/v1/orders/{self.order.pk}/")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_strangers_do_not_see_the_order(self):
        self.client.force_authenticate(user=UserFactory(username="stranger"))

        response = self.client.delete(f"/api/v1/orders/{self.order.pk}/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
