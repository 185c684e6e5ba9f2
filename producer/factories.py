from decimal import Decimal

import factory
from django.contrib.auth.models import User
from factory.django import DjangoModelFactory
from faker import Faker

from .models import AgriInput, Product

fake = Faker()


class UserFactory(DjangoModelFactory):
    class Meta:
        model = User
        django_get_or_create = ("username",)

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda obj: f"{obj.username}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")


class ProductFactory(DjangoModelFactory):
    class Meta:
        model = Product

    name = factory.Faker("word")
    category = Product.Category.VEGETABLES
    unit = Product.Unit.KG
    price = Decimal("100.00")
    quantity = factory.Faker("random_int", min=5, max=500)
    description = factory.LazyFunction(lambda: fake.sentence()[:100])
    image = factory.Faker("image_url")
    seller_email = factory.Faker("email")


class AgriInputFactory(DjangoModelFactory):
    class Meta:
        model = AgriInput

    name = factory.Faker("word")
    category = AgriInput.Category.SEEDS
    unit = AgriInput.Unit.PACKET
    price = Decimal("250.00")
    quantity = factory.Faker("random_int", min=5, max=500)
    description = factory.LazyFunction(lambda: fake.sentence()[:100])
    image = factory.Faker("image_url")
    seller_email = factory.Faker("email")
