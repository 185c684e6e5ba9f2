from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Iterable, Union


class PaymentGatewayInterface(ABC):

    @abstractmethod
    def sign(self, fields: Dict[str, Any], signed_field_names: Union[str, Iterable[str]]) -> str:
        pass

    @abstractmethod
    def build_payment_form(
        self, amount: Decimal, delivery_charge: Decimal, total_amount: Decimal, transaction_uuid: str
    ) -> Dict[str, str]:
        pass

    @abstractmethod
    def decode_callback(self, params: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def is_success(self, callback: Dict[str, Any]) -> bool:
        pass

    @abstractmethod
    def inquiry(self, transaction_uuid: str, total_amount: Decimal) -> Dict[str, Any]:
        pass
