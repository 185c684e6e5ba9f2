from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from market.models import Cart, PaymentMethod
from producer.models import ListingKind


class PaymentDraftStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    FAILED = "failed", _("Failed")


class TransactionStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    COMPLETED = "completed", _("Completed")
    FAILED = "failed", _("Failed")
    REFUNDED = "refunded", _("Refunded")


class PaymentDraft(models.Model):
    """
    Checkout staged while the buyer is away at the payment gateway.

    Built from the server-side cart at initiation. A confirmed callback turns it into
    orders and deletes it; a failed callback keeps it so the buyer can retry.
    """

    transaction_uuid = models.CharField(max_length=100, unique=True, verbose_name=_("Transaction UUID"))
    buyer_email = models.EmailField(db_index=True, verbose_name=_("Buyer Email"))
    cart = models.ForeignKey(
        Cart, on_delete=models.SET_NULL, null=True, blank=True, related_name="payment_drafts", verbose_name=_("Cart")
    )
    order_type = models.CharField(max_length=20, choices=ListingKind.choices, verbose_name=_("Order Type"))
    lines = models.JSONField(default=list, verbose_name=_("Cart Lines"))
    delivery_info = models.JSONField(default=dict, verbose_name=_("Delivery Information"))
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_("Subtotal"))
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, verbose_name=_("Delivery Fee"))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, verbose_name=_("Total Amount"))
    product_code = models.CharField(max_length=50, verbose_name=_("Product Code"))
    signature = models.CharField(max_length=255, verbose_name=_("Signature"))
    status = models.CharField(
        max_length=10, choices=PaymentDraftStatus.choices, default=PaymentDraftStatus.PENDING, verbose_name=_("Status")
    )
    failure_count = models.PositiveIntegerField(default=0, verbose_name=_("Failure Count"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Payment Draft")
        verbose_name_plural = _("Payment Drafts")
        ordering = ["-created_at"]

    def __str__(self):
        return f"Draft {self.transaction_uuid} ({self.buyer_email}) - {self.status}"


class TransactionQuerySet(models.QuerySet):
    def for_email(self, email):
        return self.filter(models.Q(buyer_email__iexact=email) | models.Q(seller_email__iexact=email))


class Transaction(models.Model):
    """
    One confirmed payment. At most one row exists per gateway transaction id.

    ``needs_review`` marks payments confirmed by the gateway with no staged draft to
    match; they carry no order reference and need manual reconciliation.
    """

    transaction_id = models.CharField(max_length=255, unique=True, verbose_name=_("Gateway Transaction ID"))
    transaction_uuid = models.CharField(
        max_length=100, unique=True, null=True, blank=True, verbose_name=_("Transaction UUID")
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"), verbose_name=_("Amount"))
    status = models.CharField(
        max_length=20, choices=TransactionStatus.choices, default=TransactionStatus.PENDING, verbose_name=_("Status")
    )
    payment_method = models.CharField(
        max_length=10, choices=PaymentMethod.choices, default=PaymentMethod.ONLINE, verbose_name=_("Payment Method")
    )
    buyer_email = models.EmailField(blank=True, db_index=True, verbose_name=_("Buyer Email"))
    seller_email = models.EmailField(blank=True, db_index=True, verbose_name=_("Seller Email"))
    date = models.DateTimeField(default=timezone.now, verbose_name=_("Date"))
    order_details = models.JSONField(default=dict, blank=True, verbose_name=_("Order Details"))
    needs_review = models.BooleanField(default=False, verbose_name=_("Needs Review"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TransactionQuerySet.as_manager()

    class Meta:
        verbose_name = _("Transaction")
        verbose_name_plural = _("Transactions")
        ordering = ["-date"]
        indexes = [models.Index(fields=["status", "date"], name="payment_txn_status_date_idx")]

    def __str__(self):
        return f"Transaction {self.transaction_id} - {self.amount} - {self.status}"
