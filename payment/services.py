import hmac
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from main.exceptions import DraftNotFound, PartialCheckoutFailure, PaymentFailed, SignatureMismatch, ValidationError
from market.models import Cart, Order, PaymentMethod
from market.services import CartService, OrderSplitter

from .esewa import Esewa, format_amount, parse_amount
from .interfaces import PaymentGatewayInterface
from .models import PaymentDraft, PaymentDraftStatus, Transaction, TransactionStatus

logger = logging.getLogger(__name__)

CART_CHANGED = "cart_changed"
CART_CHANGED_MESSAGE = "Your cart changed while the payment was in progress. The payment has been held for review."


def generate_transaction_uuid() -> str:
    millis = int(timezone.now().timestamp() * 1000)
    return f"AGRO-{millis}-{uuid.uuid4().hex[:8].upper()}"


class PaymentReconciler:
    """
    Online checkout through the payment gateway.

    ``initiate`` stages the cart as a signed ``PaymentDraft``. ``reconcile`` handles the
    success redirect: it verifies the signature against the staged draft, runs the order
    split and records exactly one ``Transaction`` per payment, all in one database
    transaction. Replayed callbacks return the existing transaction.
    """

    def __init__(self, gateway: Optional[PaymentGatewayInterface] = None):
        self.gateway = gateway or Esewa()

    def form_for(self, draft: PaymentDraft) -> Dict[str, Any]:
        fields = self.gateway.build_payment_form(
            draft.subtotal, draft.delivery_fee, draft.total_amount, draft.transaction_uuid
        )
        return {"form_url": settings.ESEWA_FORM_URL, "transaction_uuid": draft.transaction_uuid, "fields": fields}

    @transaction.atomic
    def initiate(self, cart: Cart, delivery_info: Dict[str, str]) -> Tuple[PaymentDraft, Dict[str, Any]]:
        splitter = OrderSplitter()
        lines = cart.as_lines()
        splitter.validate_lines(lines)

        subtotal = splitter.subtotal(lines)
        delivery_fee = splitter.delivery_fee * len(splitter.group_by_seller(lines))
        transaction_uuid = generate_transaction_uuid()
        fields = self.gateway.build_payment_form(subtotal, delivery_fee, subtotal + delivery_fee, transaction_uuid)

        # A new attempt supersedes whatever was staged for this cart before.
        PaymentDraft.objects.filter(cart=cart).delete()
        draft = PaymentDraft.objects.create(
            transaction_uuid=transaction_uuid,
            buyer_email=cart.buyer_email,
            cart=cart,
            order_type=cart.kind,
            lines=lines,
            delivery_info=delivery_info,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total_amount=subtotal + delivery_fee,
            product_code=fields["product_code"],
            signature=fields["signature"],
        )
        logger.info(f"Payment {transaction_uuid} staged for {cart.buyer_email}, total {draft.total_amount}")
        return draft, {"form_url": settings.ESEWA_FORM_URL, "transaction_uuid": transaction_uuid, "fields": fields}

    def _existing(self, transaction_uuid: str, reference: str) -> Optional[Transaction]:
        query = Q(transaction_uuid=transaction_uuid)
        if reference:
            query |= Q(transaction_id=reference)
        return Transaction.objects.filter(query).first()

    def _expected_amount(self, draft: PaymentDraft, echoed) -> str:
        # The gateway echoes amounts in its own format; sign its text only if the value matches.
        amount = parse_amount(echoed)
        if amount is not None and amount == draft.total_amount:
            return echoed
        return format_amount(draft.total_amount)

    def _reject(self, transaction_uuid: str, detail: str) -> None:
        logger.warning(f"Payment {transaction_uuid} could not be verified: {detail}")
        raise SignatureMismatch()

    def _confirm_with_gateway(self, transaction_uuid: str, total_amount) -> None:
        """Unsigned redirects are trusted only once the gateway's own status check agrees."""
        response = self.gateway.inquiry(transaction_uuid, total_amount)
        if not self.gateway.is_success(response):
            self._reject(transaction_uuid, f"gateway reports status {response.get('status') or 'unknown'}")
        if parse_amount(response.get("total_amount")) != total_amount:
            self._reject(transaction_uuid, f"gateway reports amount {response.get('total_amount')}")

    def verify(self, draft: PaymentDraft, callback: Dict[str, Any]) -> None:
        signature = callback.get("signature")
        if not signature:
            if callback.get("signed_payload"):
                self._reject(draft.transaction_uuid, f"unsigned payload (buyer {draft.buyer_email})")
            if parse_amount(callback.get("total_amount")) != draft.total_amount:
                self._reject(draft.transaction_uuid, f"amount {callback.get('total_amount')} (buyer {draft.buyer_email})")
            self._confirm_with_gateway(draft.transaction_uuid, draft.total_amount)
            return

        names = callback.get("signed_field_names")
        fields = callback["fields"]
        expected_fields = dict(fields)
        expected_fields.update(
            total_amount=self._expected_amount(draft, fields.get("total_amount")),
            transaction_uuid=draft.transaction_uuid,
            product_code=draft.product_code,
        )
        expected = self.gateway.sign(expected_fields, names)

        if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            logger.warning(
                f"Payment signature mismatch for {draft.transaction_uuid} "
                f"(buyer {draft.buyer_email}, reference {callback.get('reference') or '-'})"
            )
            raise SignatureMismatch()

    def _verify_unstaged(self, callback: Dict[str, Any]) -> None:
        transaction_uuid = callback["transaction_uuid"]
        signature = callback.get("signature")
        if not signature:
            amount = parse_amount(callback["total_amount"])
            if callback.get("signed_payload") or amount is None:
                self._reject(transaction_uuid, "unsigned callback for an unstaged payment")
            self._confirm_with_gateway(transaction_uuid, amount)
            return

        expected = self.gateway.sign(callback["fields"], callback.get("signed_field_names"))
        if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            logger.warning(f"Payment signature mismatch for unstaged payment {transaction_uuid}")
            raise SignatureMismatch()

    def _record_unstaged(self, callback: Dict[str, Any], buyer_email: str) -> Transaction:
        self._verify_unstaged(callback)
        reference = callback["reference"] or callback["transaction_uuid"]
        logger.warning(
            f"No staged payment for {callback['transaction_uuid']}; recording {reference} for manual review"
        )
        return Transaction.objects.create(
            transaction_id=reference,
            transaction_uuid=callback["transaction_uuid"],
            amount=parse_amount(callback["total_amount"]) or 0,
            status=TransactionStatus.COMPLETED,
            payment_method=PaymentMethod.ONLINE,
            buyer_email=buyer_email or "",
            needs_review=True,
        )

    def _still_reserved(self, draft: PaymentDraft) -> bool:
        return bool(draft.cart_id) and CartService().holds(draft.cart, draft.lines)

    def _hold_for_review(self, draft: PaymentDraft, callback: Dict[str, Any], reference: str) -> Transaction:
        """The cart changed after the payment started: keep the money on record, place no orders."""
        logger.error(f"Cart behind payment {draft.transaction_uuid} changed after initiation; holding {reference} for review")
        PaymentDraft.objects.filter(pk=draft.pk).update(status=PaymentDraftStatus.FAILED, updated_at=timezone.now())
        return Transaction.objects.create(
            transaction_id=reference,
            transaction_uuid=draft.transaction_uuid,
            amount=parse_amount(callback["total_amount"]) or draft.total_amount,
            status=TransactionStatus.COMPLETED,
            payment_method=PaymentMethod.ONLINE,
            buyer_email=draft.buyer_email,
            needs_review=True,
            order_details={"reason": CART_CHANGED, "total_amount": str(draft.total_amount), "lines": draft.lines},
        )

    def _materialize(
        self, draft: PaymentDraft, callback: Dict[str, Any], reference: str
    ) -> Tuple[Transaction, List[Order]]:
        try:
            orders = OrderSplitter().checkout(
                draft.lines,
                draft.buyer_email,
                draft.delivery_info,
                payment_method=PaymentMethod.ONLINE,
                order_type=draft.order_type,
                transaction_id=reference,
            )
        except PartialCheckoutFailure as e:
            logger.error(f"Order creation failed while reconciling {draft.transaction_uuid}: {e.message}")
            raise PaymentFailed("Your payment was received but the orders could not be created. Please retry.") from e

        txn = Transaction.objects.create(
            transaction_id=reference,
            transaction_uuid=draft.transaction_uuid,
            amount=parse_amount(callback["total_amount"]) or draft.total_amount,
            status=TransactionStatus.COMPLETED,
            payment_method=PaymentMethod.ONLINE,
            buyer_email=draft.buyer_email,
            seller_email=orders[0].seller_email,
            order_details={
                "total_amount": str(draft.total_amount),
                "orders": [
                    {
                        "order_number": order.order_number,
                        "seller_email": order.seller_email,
                        "total_amount": str(order.total_amount),
                    }
                    for order in orders
                ],
            },
        )

        if draft.cart_id:
            CartService().trim(draft.cart, draft.lines)
        draft.delete()
        return txn, orders

    def _replay(self, existing: Transaction, buyer_email: str) -> Tuple[Transaction, List[Order]]:
        if buyer_email and existing.buyer_email and existing.buyer_email.lower() != buyer_email.lower():
            raise DraftNotFound()
        if existing.order_details.get("reason") == CART_CHANGED:
            raise PaymentFailed(CART_CHANGED_MESSAGE)
        logger.info(f"Payment {existing.transaction_uuid} already reconciled as {existing.transaction_id}")
        return existing, list(Order.objects.filter(transaction_id=existing.transaction_id))

    def reconcile(self, params: Dict[str, Any], buyer_email: str = "") -> Tuple[Transaction, List[Order]]:
        callback = self.gateway.decode_callback(params)
        transaction_uuid = callback["transaction_uuid"]
        reference = callback["reference"]
        if not transaction_uuid:
            raise ValidationError("Missing transaction identifier.")

        if not self.gateway.is_success(callback):
            logger.warning(f"Payment {transaction_uuid} reported status {callback.get('status') or 'unknown'}")
            try:
                self.fail(transaction_uuid)
            except DraftNotFound:
                logger.warning(f"Failed payment {transaction_uuid} has no staged draft")
            raise PaymentFailed()

        held = False
        with transaction.atomic():
            existing = self._existing(transaction_uuid, reference)
            if existing:
                return self._replay(existing, buyer_email)

            draft = PaymentDraft.objects.select_for_update().filter(transaction_uuid=transaction_uuid).first()
            if draft is None:
                # A concurrent callback may have consumed the draft while we waited on the lock.
                existing = self._existing(transaction_uuid, reference)
                if existing:
                    return self._replay(existing, buyer_email)
                return self._record_unstaged(callback, buyer_email), []

            if buyer_email and draft.buyer_email.lower() != buyer_email.lower():
                logger.warning(f"{buyer_email} tried to reconcile payment {transaction_uuid} of {draft.buyer_email}")
                raise DraftNotFound()

            self.verify(draft, callback)

            reference = reference or transaction_uuid
            if self._still_reserved(draft):
                txn, orders = self._materialize(draft, callback, reference)
            else:
                self._hold_for_review(draft, callback, reference)
                held = True

        if held:
            raise PaymentFailed(CART_CHANGED_MESSAGE)
        logger.info(f"Payment {transaction_uuid} reconciled as {reference} into {len(orders)} order(s)")
        return txn, orders

    @transaction.atomic
    def fail(self, transaction_uuid: str) -> PaymentDraft:
        """Record a failed attempt. The draft and the cart are kept for a retry."""
        draft = PaymentDraft.objects.select_for_update().filter(transaction_uuid=transaction_uuid).first()
        if draft is None:
            raise DraftNotFound()
        PaymentDraft.objects.filter(pk=draft.pk).update(
            status=PaymentDraftStatus.FAILED, failure_count=F("failure_count") + 1, updated_at=timezone.now()
        )
        draft.refresh_from_db()
        logger.warning(f"Payment {transaction_uuid} failed for {draft.buyer_email} (attempt {draft.failure_count})")
        return draft

    def check_status(self, transaction_uuid: str, buyer_email: str) -> Dict[str, Any]:
        draft = PaymentDraft.objects.filter(transaction_uuid=transaction_uuid, buyer_email__iexact=buyer_email).first()
        if draft is None:
            txn = Transaction.objects.filter(transaction_uuid=transaction_uuid, buyer_email__iexact=buyer_email).first()
            if txn is None:
                raise DraftNotFound()
            return {"transaction_uuid": transaction_uuid, "status": txn.status, "transaction_id": txn.transaction_id}

        response = self.gateway.inquiry(draft.transaction_uuid, draft.total_amount)
        return {
            "transaction_uuid": transaction_uuid,
            "status": draft.status,
            "gateway_status": response.get("status"),
            "reference": response.get("ref_id"),
        }
