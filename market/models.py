import uuid
from datetime import timedelta
from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from phonenumber_field.modelfields import PhoneNumberField

from producer.models import ListingKind


class Cart(models.Model):
    """
    Server-owned cart. The client keeps only ``token``.

    A cart holds listings of a single kind (farm products or agricultural inputs), so
    every order it produces has one ``order_type``.
    """

    token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False, verbose_name=_("Cart Token"))
    buyer_email = models.EmailField(db_index=True, verbose_name=_("Buyer Email"))
    kind = models.CharField(
        max_length=20, choices=ListingKind.choices, default=ListingKind.PRODUCT, verbose_name=_("Listing Kind")
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Cart")
        verbose_name_plural = _("Carts")

    def __str__(self):
        return f"Cart {self.token} for {self.buyer_email}"

    @property
    def subtotal(self):
        return sum((item.line_total for item in self.items.all()), Decimal("0.00"))

    def as_lines(self):
        return [item.as_line() for item in self.items.order_by("id")]


class CartItem(models.Model):
    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    listing_kind = models.CharField(max_length=20, choices=ListingKind.choices, verbose_name=_("Listing Kind"))
    listing_id = models.PositiveBigIntegerField(verbose_name=_("Listing ID"))
    seller_email = models.EmailField(blank=True, verbose_name=_("Seller Email"))
    name = models.CharField(max_length=100, verbose_name=_("Name"))
    image = models.CharField(max_length=500, blank=True, verbose_name=_("Image Reference"))
    category = models.CharField(max_length=20, verbose_name=_("Category"))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_("Unit Price"))
    quantity = models.PositiveIntegerField(default=1, verbose_name=_("Quantity"))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Cart Item")
        verbose_name_plural = _("Cart Items")
        constraints = [
            models.UniqueConstraint(fields=["cart", "listing_kind", "listing_id"], name="unique_cart_listing"),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.name} in Cart {self.cart_id}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity

    def as_line(self):
        """Snapshot used by checkout and by staged payments."""
        return {
            "cart_item_id": self.pk,
            "listing_kind": self.listing_kind,
            "listing_id": self.listing_id,
            "seller_email": self.seller_email,
            "name": self.name,
            "image": self.image,
            "category": self.category,
            "price": str(self.unit_price),
            "quantity": self.quantity,
        }


class OrderStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    PROCESSING = "processing", _("Processing")
    SHIPPING = "shipping", _("Shipping")
    DELIVERED = "delivered", _("Delivered")
    CANCELLED = "cancelled", _("Cancelled")

    @classmethod
    def progression(cls):
        """Delivery states in their only allowed order."""
        return [cls.PENDING, cls.PROCESSING, cls.SHIPPING, cls.DELIVERED]

    @classmethod
    def get_next_allowed_statuses(cls, current_status):
        """Returns a list of statuses that can be transitioned to from the current status."""
        flow = cls.progression()
        if current_status not in flow:
            return []
        allowed = flow[flow.index(current_status) + 1 :]
        if current_status == cls.PENDING:
            allowed.append(cls.CANCELLED)
        return allowed


class PaymentMethod(models.TextChoices):
    CASH = "cash", _("Cash on Delivery")
    ONLINE = "online", _("Online")


class OrderQuerySet(models.QuerySet):
    """Custom QuerySet for Order with common queries."""

    def for_buyer(self, email):
        return self.filter(buyer_email__iexact=email)

    def for_seller(self, email):
        return self.filter(seller_email__iexact=email)

    def by_status(self, status):
        return self.filter(status=status)

    def newest_first(self):
        return self.order_by("-created_at", "-id")


class Order(models.Model):
    """
    A single-seller purchase created from one group of cart lines at checkout.

    Fields:
    - order_number: ``ORDER-<epoch millis>-<discriminator>``, unique.
    - items: Line snapshots (name, price, quantity, image, category) taken at checkout,
      so later listing edits never alter order history.
    - subtotal, delivery_fee, total_amount: ``total_amount = subtotal + delivery_fee``.
    - status_times: Status value to the time that status was most recently entered.
    - created_at: Immutable; the display time of the Pending state.
    - updated_at: Time of the most recent transition.
    """

    order_number = models.CharField(max_length=64, unique=True, editable=False, verbose_name=_("Order Number"))
    items = models.JSONField(default=list, verbose_name=_("Items"))
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_("Subtotal"))
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, verbose_name=_("Delivery Fee"))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_("Total Amount"))
    buyer_email = models.EmailField(db_index=True, verbose_name=_("Buyer Email"))
    seller_email = models.EmailField(db_index=True, verbose_name=_("Seller Email"))
    order_type = models.CharField(max_length=20, choices=ListingKind.choices, verbose_name=_("Order Type"))
    delivery_address = models.TextField(verbose_name=_("Delivery Address"))
    phone_number = PhoneNumberField(verbose_name=_("Phone Number"))
    payment_method = models.CharField(
        max_length=10, choices=PaymentMethod.choices, default=PaymentMethod.CASH, verbose_name=_("Payment Method")
    )
    transaction_id = models.CharField(max_length=255, blank=True, verbose_name=_("Transaction ID"))
    status = models.CharField(
        max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True, verbose_name=_("Status")
    )
    status_times = models.JSONField(default=dict, blank=True, verbose_name=_("Status Times"))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created At"))
    updated_at = models.DateTimeField(default=timezone.now, verbose_name=_("Updated At"))
    cancelled_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Cancelled At"))

    objects = OrderQuerySet.as_manager()

    class Meta:
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.order_number} ({self.seller_email} -> {self.buyer_email})"

    def can_cancel(self):
        return self.status == OrderStatus.PENDING

    @property
    def estimated_delivery(self):
        if self.status == OrderStatus.PENDING:
            return self.created_at + timedelta(days=7)
        if self.status == OrderStatus.PROCESSING:
            return self.updated_at + timedelta(days=4)
        if self.status == OrderStatus.SHIPPING:
            return self.updated_at + timedelta(days=2)
        if self.status == OrderStatus.DELIVERED:
            return self.updated_at
        return None


class OrderStatusEvent(models.Model):
    """
    One applied status transition, kept as the order's history.
    """

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="status_events", verbose_name=_("Order"))
    from_status = models.CharField(max_length=20, choices=OrderStatus.choices, verbose_name=_("From Status"))
    to_status = models.CharField(max_length=20, choices=OrderStatus.choices, verbose_name=_("To Status"))
    occurred_at = models.DateTimeField(verbose_name=_("Occurred At"))
    actor_email = models.EmailField(blank=True, verbose_name=_("Actor Email"))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Order Status Event")
        verbose_name_plural = _("Order Status Events")
        ordering = ["occurred_at", "id"]

    def __str__(self):
        return f"{self.order.order_number}: {self.from_status} -> {self.to_status}"
