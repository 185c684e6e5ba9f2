from decimal import Decimal

import factory
from factory.django import DjangoModelFactory

from producer.models import ListingKind

from .models import Cart, CartItem, Order, OrderStatus, PaymentMethod


class CartFactory(DjangoModelFactory):
    class Meta:
        model = Cart

    buyer_email = factory.Faker("email")
    kind = ListingKind.PRODUCT


class CartItemFactory(DjangoModelFactory):
    """Cart line without a stock reservation behind it."""

    class Meta:
        model = CartItem

    cart = factory.SubFactory(CartFactory)
    listing_kind = ListingKind.PRODUCT
    listing_id = factory.Sequence(lambda n: n + 1)
    seller_email = factory.Faker("email")
    name = factory.Faker("word")
    image = ""
    category = "vegetables"
    unit_price = Decimal("100.00")
    quantity = 1


class OrderFactory(DjangoModelFactory):
    class Meta:
        model = Order

    order_number = factory.Sequence(lambda n: f"ORDER-1700000000000-{n}TEST")
    items = factory.LazyFunction(
        lambda: [{"listing_id": 1, "name": "Tomato", "price": "100.00", "quantity": 2, "image": "", "category": "vegetables"}]
    )
    subtotal = Decimal("200.00")
    delivery_fee = Decimal("50.00")
    total_amount = Decimal("250.00")
    buyer_email = factory.Faker("email")
    seller_email = factory.Faker("email")
    order_type = ListingKind.PRODUCT
    delivery_address = factory.Faker("address")
    phone_number = "+9779841234567"
    payment_method = PaymentMethod.CASH
    status = OrderStatus.PENDING
