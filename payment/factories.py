from decimal import Decimal

import factory
from factory.django import DjangoModelFactory

from market.models import PaymentMethod

from .models import Transaction, TransactionStatus


class TransactionFactory(DjangoModelFactory):
    class Meta:
        model = Transaction

    transaction_id = factory.Sequence(lambda n: f"000{n}ABC")
    transaction_uuid = factory.Sequence(lambda n: f"AGRO-1700000000000-{n:08d}")
    amount = Decimal("250.00")
    status = TransactionStatus.COMPLETED
    payment_method = PaymentMethod.ONLINE
    buyer_email = factory.Faker("email")
    seller_email = factory.Faker("email")
