import base64
import binascii
import hashlib
import hmac
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional, Union

import requests
from django.conf import settings

from main.exceptions import GatewayUnavailable, ValidationError

from .interfaces import PaymentGatewayInterface

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_FIELD_NAMES = "total_amount,transaction_uuid,product_code"
SUCCESS_STATUSES = {"COMPLETE", "COMPLETED", "SUCCESS"}


def format_amount(value) -> str:
    return str(Decimal(str(value)).quantize(Decimal("0.01")))


def parse_amount(value) -> Optional[Decimal]:
    """eSewa echoes amounts back as strings such as "1,000.0"."""
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value).replace(",", ""))
    except InvalidOperation:
        return None


class Esewa(PaymentGatewayInterface):
    """eSewa ePay v2 gateway (HMAC-SHA256 signed form post)."""

    def __init__(self, secret_key: Optional[str] = None, product_code: Optional[str] = None):
        self.secret_key = secret_key or settings.ESEWA_SECRET_KEY
        self.product_code = product_code or settings.ESEWA_PRODUCT_CODE
        self.form_url = settings.ESEWA_FORM_URL
        self.status_url = settings.ESEWA_STATUS_URL

        if not self.secret_key:
            logger.error("eSewa secret key is not set in settings!")

    def sign(self, fields: Dict[str, Any], signed_field_names: Union[str, Iterable[str]]) -> str:
        """Base64 HMAC-SHA256 over ``name=value`` pairs joined by commas, in the given order."""
        if isinstance(signed_field_names, str):
            signed_field_names = signed_field_names.split(",")
        message = ",".join(f"{name}={fields.get(name, '')}" for name in signed_field_names)
        digest = hmac.new(self.secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("utf-8")

    def build_payment_form(
        self, amount: Decimal, delivery_charge: Decimal, total_amount: Decimal, transaction_uuid: str
    ) -> Dict[str, str]:
        fields = {
            "amount": format_amount(amount),
            "tax_amount": "0",
            "total_amount": format_amount(total_amount),
            "transaction_uuid": transaction_uuid,
            "product_code": self.product_code,
            "product_service_charge": "0",
            "product_delivery_charge": format_amount(delivery_charge),
            "success_url": settings.ESEWA_SUCCESS_URL,
            "failure_url": settings.ESEWA_FAILURE_URL,
            "signed_field_names": DEFAULT_SIGNED_FIELD_NAMES,
        }
        fields["signature"] = self.sign(fields, DEFAULT_SIGNED_FIELD_NAMES)
        logger.info(f"eSewa form built for {transaction_uuid}, total {fields['total_amount']}")
        return fields

    def decode_callback(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Normalize a redirect callback.

        eSewa v2 sends a base64 encoded JSON document in ``data``; older redirects carry
        flat ``oid``/``amt``/``refId`` parameters with no signature of their own.
        ``signed_payload`` tells the two apart: a ``data`` document must carry a signature.
        """
        if params.get("data"):
            try:
                payload = json.loads(base64.b64decode(params["data"]).decode("utf-8"))
            except (binascii.Error, UnicodeDecodeError, ValueError) as e:
                logger.warning(f"Undecodable eSewa callback payload: {e}")
                raise ValidationError("Malformed payment callback.") from e
            if not isinstance(payload, dict):
                raise ValidationError("Malformed payment callback.")
            fields = {key: str(value) for key, value in payload.items()}
            return {
                "transaction_uuid": fields.get("transaction_uuid", ""),
                "reference": fields.get("transaction_code") or fields.get("ref_id", ""),
                "total_amount": fields.get("total_amount", ""),
                "status": fields.get("status", ""),
                "signed_field_names": fields.get("signed_field_names") or DEFAULT_SIGNED_FIELD_NAMES,
                "signature": fields.get("signature", ""),
                "signed_payload": True,
                "fields": fields,
            }

        transaction_uuid = params.get("transaction_uuid") or params.get("oid") or ""
        total_amount = params.get("total_amount") or params.get("amt") or ""
        fields = {
            "total_amount": total_amount,
            "transaction_uuid": transaction_uuid,
            "product_code": params.get("product_code") or self.product_code,
        }
        return {
            "transaction_uuid": transaction_uuid,
            "reference": params.get("transaction_code") or params.get("refId") or "",
            "total_amount": total_amount,
            # Flat redirects only land on the success url.
            "status": params.get("status") or "COMPLETE",
            "signed_field_names": DEFAULT_SIGNED_FIELD_NAMES,
            "signature": params.get("signature", ""),
            "signed_payload": False,
            "fields": fields,
        }

    def is_success(self, callback: Dict[str, Any]) -> bool:
        return str(callback.get("status", "")).upper() in SUCCESS_STATUSES

    def inquiry(self, transaction_uuid: str, total_amount: Decimal) -> Dict[str, Any]:
        """Ask eSewa for the status of a payment."""
        logger.info(f"Performing eSewa status check for {transaction_uuid}")
        params = {
            "product_code": self.product_code,
            "total_amount": format_amount(total_amount),
            "transaction_uuid": transaction_uuid,
        }
        try:
            response = requests.get(self.status_url, params=params, timeout=10)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"eSewa status check failed for {transaction_uuid}: {e}")
            raise GatewayUnavailable() from e

        logger.info(f"eSewa status for {transaction_uuid}: {data.get('status')}")
        return data
