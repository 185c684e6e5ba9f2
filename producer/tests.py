from unittest.mock import patch

from rest_framework import status
from rest_framework.test import APITestCase

from .factories import AgriInputFactory, ProductFactory, UserFactory
from .models import ListingKind, Product, StockAdjustment
from .services import InventoryLedger
from .views import ProductViewSet


class ProductAPITestCase(APITestCase):
    def setUp(self):
        self.seller = UserFactory(username="farmer")
        self.client.force_authenticate(user=self.seller)
        self.url = "/api/v1/products/"

    def test_create_product(self):
        """
        Test creating a product as the authenticated seller.
        """
        data = {
            "name": "Tomato",
            "price": "80.00",
            "category": "vegetables",
            "quantity": 20,
            "unit": "KG",
            "description": "Fresh from Dhading",
            "image": "products/tomato.jpg",
            "seller_email": "spoofed@example.com",
        }
        response = self.client.post(self.url, data, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["seller_email"], "farmer@example.com")
        self.assertEqual(response.data["kind"], "product")

    def test_create_product_rejects_invalid_values(self):
        data = {"name": "Tomato", "price": "0", "category": "grains", "quantity": 0, "unit": "KG", "description": "x" * 101}
        response = self.client.post(self.url, data, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        for field in ("price", "category", "quantity", "description"):
            self.assertIn(field, response.data)

    def test_list_products_is_public_and_filterable(self):
        ProductFactory(category=Product.Category.FRUITS, seller_email="a@x.com")
        ProductFactory(category=Product.Category.VEGETABLES, seller_email="b@x.com")
        self.client.force_authenticate(user=None)

        response = self.client.get(self.url, {"category": "fruits"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["results"]), 1)
        self.assertEqual(response.data["results"][0]["seller_email"], "a@x.com")

    def test_update_by_owner(self):
        product = ProductFactory(seller_email="farmer@example.com", quantity=5)
        response = self.client.patch(f"{self.url}{product.pk}/", {"quantity": 0, "price": "90.00"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.quantity, 0)

    def test_update_keeps_stock_reserved_since_the_read(self):
        product = ProductFactory(seller_email="farmer@example.com", quantity=5)
        loaded = Product.objects.get(pk=product.pk)
        InventoryLedger().reserve(ListingKind.PRODUCT, product.pk, 2)

        with patch.object(ProductViewSet, "get_object", return_value=loaded):
            response = self.client.patch(f"{self.url}{product.pk}/", {"name": "Cherry Tomato"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["quantity"], 3)
        product.refresh_from_db()
        self.assertEqual(product.name, "Cherry Tomato")
        self.assertEqual(product.quantity, 3)

    def test_update_by_other_seller_is_forbidden(self):
        product = ProductFactory(seller_email="someone@example.com", quantity=5)
        response = self.client.patch(f"{self.url}{product.pk}/", {"quantity": 50}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "ownership_mismatch")
        product.refresh_from_db()
        self.assertEqual(product.quantity, 5)

    def test_delete_by_owner_only(self):
        mine = ProductFactory(seller_email="farmer@example.com")
        theirs = ProductFactory(seller_email="someone@example.com")

        self.assertEqual(self.client.delete(f"{self.url}{theirs.pk}/").status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.delete(f"{self.url}{mine.pk}/").status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=mine.pk).exists())
        self.assertTrue(Product.objects.filter(pk=theirs.pk).exists())


class AdjustQuantityAPITestCase(APITestCase):
    def setUp(self):
        self.seller = UserFactory(username="s1")
        self.client.force_authenticate(user=self.seller)
        self.product = ProductFactory(quantity=5, seller_email="s1@example.com")
        self.url = f"/api/v1/products/{self.product.pk}/adjust-quantity/"

    def test_decrease_and_increase(self):
        response = self.client.post(self.url, {"quantity": 3, "operation": "decrease"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["quantity"], 2)

        response = self.client.post(self.url, {"quantity": 3, "operation": "increase"}, format="json")
        self.assertEqual(response.data["data"]["quantity"], 5)

    def test_not_enough_quantity(self):
        response = self.client.post(self.url, {"quantity": 6, "operation": "decrease"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["message"], "Not enough quantity available.")
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)

    def test_unknown_operation(self):
        response = self.client.post(self.url, {"quantity": 1, "operation": "double"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_wrong_seller_context(self):
        data = {"quantity": 1, "operation": "decrease", "seller_email": "stale@x.com"}
        response = self.client.post(self.url, data, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_other_users_cannot_adjust(self):
        self.client.force_authenticate(user=UserFactory(username="buyer"))

        for operation in ("increase", "decrease"):
            response = self.client.post(self.url, {"quantity": 2, "operation": operation}, format="json")
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
            self.assertEqual(response.data["code"], "ownership_mismatch")

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)
        self.assertFalse(StockAdjustment.objects.exists())

    def test_idempotency_header_prevents_double_decrement(self):
        for _ in range(2):
            response = self.client.post(
                self.url, {"quantity": 2, "operation": "decrease"}, format="json", HTTP_IDEMPOTENCY_KEY="abc-123"
            )
            self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 3)
        self.assertEqual(StockAdjustment.objects.count(), 1)


class CatalogAPITestCase(APITestCase):
    def test_by_seller_groups_by_category(self):
        AgriInputFactory(seller_email="supplier@x.com", category="fertilizers")

        response = self.client.get("/api/v1/agri-inputs/by-seller/supplier@x.com/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["fertilizers"]), 1)
        self.assertEqual(response.data["seeds"], [])
        self.assertEqual(response.data["tools"], [])

    def test_sellers(self):
        ProductFactory(seller_email="big@x.com")
        ProductFactory(seller_email="big@x.com")
        ProductFactory(seller_email="small@x.com")

        response = self.client.get("/api/v1/products/sellers/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]["seller_email"], "big@x.com")
        self.assertEqual(response.data[0]["listing_count"], 2)
        self.assertEqual(response.data[0]["sample"]["seller_email"], "big@x.com")
