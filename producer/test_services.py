from django.test import TestCase

from main.exceptions import InsufficientStock, ListingNotFound, OwnershipMismatch, ValidationError

from .factories import AgriInputFactory, ProductFactory
from .models import AgriInput, ListingKind, Product, StockAdjustment
from .services import CatalogQueryService, InventoryLedger


class InventoryLedgerTest(TestCase):
    def setUp(self):
        self.ledger = InventoryLedger()
        self.product = ProductFactory(quantity=5, seller_email="s1@x.com")

    def test_decrease_then_increase_restores_quantity(self):
        listing = self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 3, "decrease")
        self.assertEqual(listing.quantity, 2)

        listing = self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 3, "increase")
        self.assertEqual(listing.quantity, 5)
        self.assertEqual(StockAdjustment.objects.count(), 2)

    def test_decrease_below_zero_is_rejected_without_change(self):
        with self.assertRaises(InsufficientStock):
            self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 6, "decrease")

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)
        self.assertFalse(StockAdjustment.objects.exists())

    def test_decrease_to_exactly_zero(self):
        listing = self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 5, "decrease")
        self.assertEqual(listing.quantity, 0)

        with self.assertRaises(InsufficientStock):
            self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 1, "decrease")

    def test_quantity_never_negative_over_a_sequence(self):
        for delta, direction in [(2, "decrease"), (4, "decrease"), (1, "increase"), (4, "decrease"), (3, "decrease")]:
            try:
                self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, delta, direction)
            except InsufficientStock:
                pass
            self.product.refresh_from_db()
            self.assertGreaterEqual(self.product.quantity, 0)

    def test_ownership_mismatch(self):
        with self.assertRaises(OwnershipMismatch):
            self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 1, "decrease", expected_seller_email="other@x.com")

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)

    def test_ownership_match_is_case_insensitive(self):
        listing = self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 1, "decrease", expected_seller_email="S1@X.com")
        self.assertEqual(listing.quantity, 4)

    def test_replayed_idempotency_key_is_applied_once(self):
        self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 2, "decrease", idempotency_key="line-1-add")
        listing = self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 2, "decrease", idempotency_key="line-1-add")

        self.assertEqual(listing.quantity, 3)
        self.assertEqual(StockAdjustment.objects.filter(idempotency_key="line-1-add").count(), 1)

    def test_failed_call_does_not_consume_idempotency_key(self):
        with self.assertRaises(InsufficientStock):
            self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 9, "decrease", idempotency_key="retry-me")

        listing = self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 1, "decrease", idempotency_key="retry-me")
        self.assertEqual(listing.quantity, 4)

    def test_invalid_input(self):
        with self.assertRaises(ValidationError):
            self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 0, "decrease")
        with self.assertRaises(ValidationError):
            self.ledger.adjust(ListingKind.PRODUCT, self.product.pk, 1, "sideways")
        with self.assertRaises(ValidationError):
            self.ledger.adjust("livestock", self.product.pk, 1, "decrease")

    def test_missing_listing(self):
        with self.assertRaises(ListingNotFound):
            self.ledger.adjust(ListingKind.PRODUCT, 999999, 1, "decrease")

    def test_agri_input_kind(self):
        agri_input = AgriInputFactory(quantity=10)
        listing = self.ledger.reserve(ListingKind.AGRI_INPUT, agri_input.pk, 4)
        self.assertIsInstance(listing, AgriInput)
        self.assertEqual(listing.quantity, 6)

        listing = self.ledger.release(ListingKind.AGRI_INPUT, agri_input.pk, 4)
        self.assertEqual(listing.quantity, 10)


class CatalogQueryServiceTest(TestCase):
    def setUp(self):
        self.catalog = CatalogQueryService()

    def test_listings_by_seller_groups_every_category(self):
        ProductFactory(seller_email="farmer@x.com", category=Product.Category.FRUITS, name="apple")
        ProductFactory(seller_email="farmer@x.com", category=Product.Category.FRUITS, name="banana")
        ProductFactory(seller_email="someone@x.com", category=Product.Category.VEGETABLES)

        grouped = self.catalog.listings_by_seller(ListingKind.PRODUCT, "farmer@x.com")

        self.assertEqual(set(grouped), {"fruits", "vegetables"})
        self.assertEqual([p.name for p in grouped["fruits"]], ["apple", "banana"])
        self.assertEqual(grouped["vegetables"], [])

    def test_listings_by_seller_for_agri_inputs(self):
        AgriInputFactory(seller_email="supplier@x.com", category=AgriInput.Category.TOOLS)

        grouped = self.catalog.listings_by_seller(ListingKind.AGRI_INPUT, "supplier@x.com")

        self.assertEqual(set(grouped), {"seeds", "fertilizers", "tools"})
        self.assertEqual(len(grouped["tools"]), 1)

    def test_sellers_with_listings_ordered_by_count(self):
        first = ProductFactory(seller_email="big@x.com")
        ProductFactory(seller_email="big@x.com")
        ProductFactory(seller_email="small@x.com")

        rows = self.catalog.sellers_with_listings(ListingKind.PRODUCT)

        self.assertEqual([row["seller_email"] for row in rows], ["big@x.com", "small@x.com"])
        self.assertEqual(rows[0]["listing_count"], 2)
        self.assertEqual(rows[0]["sample"], first)

    def test_sellers_with_listings_empty(self):
        self.assertEqual(self.catalog.sellers_with_listings(ListingKind.AGRI_INPUT), [])
