from decimal import Decimal

from django.core.validators import MaxLengthValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _


class ListingKind(models.TextChoices):
    PRODUCT = "product", _("Product")
    AGRI_INPUT = "agriinput", _("Agricultural Input")


class ListingQuerySet(models.QuerySet):
    """Custom QuerySet shared by every listing model."""

    def for_seller(self, seller_email):
        return self.filter(seller_email__iexact=seller_email)

    def in_stock(self):
        return self.filter(quantity__gt=0)


class Listing(models.Model):
    """
    A sellable item owned by a seller, with a stock counter.

    Fields:
    - name: Display name of the listing.
    - price: Unit price, always greater than zero.
    - category: Closed category set, defined per concrete listing model.
    - quantity: Units currently available. Never negative; only the inventory ledger
      and the owning seller's edits change it.
    - unit: Closed unit set, defined per concrete listing model.
    - description: Short description, at most 100 characters.
    - image: Opaque reference to the image held by media storage.
    - seller_email: Email of the owning seller, used for every ownership check.
    """

    kind = None

    name = models.CharField(max_length=100, verbose_name=_("Name"))
    price = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))], verbose_name=_("Price")
    )
    quantity = models.PositiveIntegerField(verbose_name=_("Available Quantity"))
    description = models.CharField(
        max_length=100, blank=True, validators=[MaxLengthValidator(100)], verbose_name=_("Description")
    )
    image = models.CharField(max_length=500, blank=True, verbose_name=_("Image Reference"))
    seller_email = models.EmailField(db_index=True, verbose_name=_("Seller Email"))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Creation Time"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Last Update Time"))

    objects = ListingQuerySet.as_manager()

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.name} ({self.seller_email})"

    def is_owned_by(self, email):
        return bool(email) and self.seller_email.lower() == email.lower()


class Product(Listing):
    """Farm produce listed by a farmer."""

    kind = ListingKind.PRODUCT

    class Category(models.TextChoices):
        FRUITS = "fruits", _("Fruits")
        VEGETABLES = "vegetables", _("Vegetables")

    class Unit(models.TextChoices):
        KG = "KG", _("KG")
        DOZEN = "Dozen", _("Dozen")
        PIECE = "Piece", _("Piece")

    category = models.CharField(max_length=20, choices=Category.choices, verbose_name=_("Category"))
    unit = models.CharField(max_length=10, choices=Unit.choices, default=Unit.KG, verbose_name=_("Unit"))

    class Meta(Listing.Meta):
        verbose_name = _("Product")
        verbose_name_plural = _("Products")


class AgriInput(Listing):
    """Seeds, fertilizers and tools listed by an input supplier."""

    kind = ListingKind.AGRI_INPUT

    class Category(models.TextChoices):
        SEEDS = "seeds", _("Seeds")
        FERTILIZERS = "fertilizers", _("Fertilizers")
        TOOLS = "tools", _("Tools")

    class Unit(models.TextChoices):
        PACKET = "Packet", _("Packet")
        BAG = "Bag", _("Bag")
        PIECE = "Piece", _("Piece")
        KG = "KG", _("KG")

    category = models.CharField(max_length=20, choices=Category.choices, verbose_name=_("Category"))
    unit = models.CharField(max_length=10, choices=Unit.choices, default=Unit.PACKET, verbose_name=_("Unit"))

    class Meta(Listing.Meta):
        verbose_name = _("Agricultural Input")
        verbose_name_plural = _("Agricultural Inputs")


LISTING_MODELS = {
    ListingKind.PRODUCT: Product,
    ListingKind.AGRI_INPUT: AgriInput,
}


def listing_model_for(kind):
    try:
        return LISTING_MODELS[ListingKind(kind)]
    except ValueError:
        return None


class StockAdjustment(models.Model):
    """
    One applied inventory ledger operation.

    The optional idempotency key is unique, so a retried call carrying the same key
    finds its earlier row and is not applied twice.
    """

    class Direction(models.TextChoices):
        DECREASE = "decrease", _("Decrease")
        INCREASE = "increase", _("Increase")

    listing_kind = models.CharField(max_length=20, choices=ListingKind.choices, verbose_name=_("Listing Kind"))
    listing_id = models.PositiveBigIntegerField(verbose_name=_("Listing ID"))
    delta = models.PositiveIntegerField(verbose_name=_("Delta"))
    direction = models.CharField(max_length=10, choices=Direction.choices, verbose_name=_("Direction"))
    idempotency_key = models.CharField(
        max_length=255, unique=True, null=True, blank=True, verbose_name=_("Idempotency Key")
    )
    resulting_quantity = models.PositiveIntegerField(null=True, blank=True, verbose_name=_("Resulting Quantity"))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Creation Time"))

    class Meta:
        verbose_name = _("Stock Adjustment")
        verbose_name_plural = _("Stock Adjustments")
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["listing_kind", "listing_id"], name="producer_stock_listing_idx")]

    def __str__(self):
        return f"{self.direction} {self.delta} on {self.listing_kind}#{self.listing_id}"
