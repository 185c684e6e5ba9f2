import logging
from typing import Dict, List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Count, F
from django.utils import timezone

from main.exceptions import InsufficientStock, ListingNotFound, OwnershipMismatch, ValidationError

from .models import Listing, StockAdjustment, listing_model_for

logger = logging.getLogger(__name__)


class InventoryLedger:
    """
    Applies signed quantity deltas to listings.

    A decrease is a single conditional UPDATE (``quantity >= delta``), so two buyers
    racing for the last unit cannot both succeed. Calls that carry an idempotency key
    are applied at most once.
    """

    DECREASE = StockAdjustment.Direction.DECREASE
    INCREASE = StockAdjustment.Direction.INCREASE

    def _model(self, kind):
        model = listing_model_for(kind)
        if model is None:
            raise ValidationError(f"Unknown listing kind: {kind}")
        return model

    def _validate_delta(self, delta) -> int:
        try:
            delta = int(delta)
        except (TypeError, ValueError) as e:
            raise ValidationError("Quantity must be a whole number.") from e
        if delta <= 0:
            raise ValidationError("Quantity must be greater than zero.")
        return delta

    def _validate_direction(self, direction) -> str:
        if direction not in StockAdjustment.Direction.values:
            raise ValidationError("Invalid operation. Use 'increase' or 'decrease'.")
        return direction

    def get_listing(self, kind, listing_id) -> Listing:
        model = self._model(kind)
        try:
            return model.objects.get(pk=listing_id)
        except model.DoesNotExist:
            raise ListingNotFound()

    def adjust(
        self,
        kind,
        listing_id,
        delta,
        direction,
        expected_seller_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Listing:
        listing, _ = self.apply(kind, listing_id, delta, direction, expected_seller_email, idempotency_key)
        return listing

    @transaction.atomic
    def apply(
        self,
        kind,
        listing_id,
        delta,
        direction,
        expected_seller_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[Listing, bool]:
        """Same as ``adjust`` but also reports whether the call changed stock (False for a replayed key)."""
        model = self._model(kind)
        delta = self._validate_delta(delta)
        direction = self._validate_direction(direction)

        if idempotency_key and StockAdjustment.objects.filter(idempotency_key=idempotency_key).exists():
            logger.info(f"Replayed stock adjustment key={idempotency_key} on {kind}#{listing_id}, not applied again")
            return self.get_listing(kind, listing_id), False

        listing = self.get_listing(kind, listing_id)
        if expected_seller_email and not listing.is_owned_by(expected_seller_email):
            logger.warning(
                f"Ownership mismatch on {kind}#{listing_id}: expected {expected_seller_email}, owner {listing.seller_email}"
            )
            raise OwnershipMismatch()

        try:
            with transaction.atomic():
                queryset = model.objects.filter(pk=listing_id)
                if direction == self.DECREASE:
                    updated = queryset.filter(quantity__gte=delta).update(
                        quantity=F("quantity") - delta, updated_at=timezone.now()
                    )
                    if not updated:
                        listing.refresh_from_db()
                        logger.warning(
                            f"Insufficient stock on {kind}#{listing_id}: requested {delta}, available {listing.quantity}"
                        )
                        raise InsufficientStock(available=listing.quantity)
                else:
                    queryset.update(quantity=F("quantity") + delta, updated_at=timezone.now())

                listing.refresh_from_db()
                StockAdjustment.objects.create(
                    listing_kind=kind,
                    listing_id=listing_id,
                    delta=delta,
                    direction=direction,
                    idempotency_key=idempotency_key or None,
                    resulting_quantity=listing.quantity,
                )
        except IntegrityError:
            # A concurrent call with the same key committed first.
            logger.info(f"Replayed stock adjustment key={idempotency_key} on {kind}#{listing_id}, not applied again")
            return self.get_listing(kind, listing_id), False

        logger.info(f"Stock {direction} of {delta} on {kind}#{listing_id}, quantity now {listing.quantity}")
        return listing, True

    def reserve(self, kind, listing_id, quantity, expected_seller_email=None, idempotency_key=None) -> Listing:
        return self.adjust(kind, listing_id, quantity, self.DECREASE, expected_seller_email, idempotency_key)

    def release(self, kind, listing_id, quantity, expected_seller_email=None, idempotency_key=None) -> Listing:
        return self.adjust(kind, listing_id, quantity, self.INCREASE, expected_seller_email, idempotency_key)


class CatalogQueryService:
    """Read-side grouping of listings by seller and category."""

    def _model(self, kind):
        model = listing_model_for(kind)
        if model is None:
            raise ValidationError(f"Unknown listing kind: {kind}")
        return model

    def listings_by_seller(self, kind, seller_email) -> Dict[str, List[Listing]]:
        model = self._model(kind)
        grouped = {category: [] for category in model.Category.values}
        for listing in model.objects.for_seller(seller_email).order_by("created_at", "id"):
            grouped.setdefault(listing.category, []).append(listing)
        return grouped

    def sellers_with_listings(self, kind) -> List[dict]:
        """
        One row per seller: ``seller_email``, ``listing_count`` and ``sample``, the
        seller's first created listing. Sellers with the most listings come first.
        """
        model = self._model(kind)
        counts = list(
            model.objects.values("seller_email")
            .annotate(listing_count=Count("id"))
            .order_by("-listing_count", "seller_email")
        )

        samples = {}
        for listing in model.objects.filter(seller_email__in=[row["seller_email"] for row in counts]).order_by(
            "created_at", "id"
        ):
            samples.setdefault(listing.seller_email, listing)

        return [
            {
                "seller_email": row["seller_email"],
                "listing_count": row["listing_count"],
                "sample": samples.get(row["seller_email"]),
            }
            for row in counts
        ]
