"""
Factory Boy factories for authentication models.

Usage:
    from authentication.tests.factories import UserFactory

    user = UserFactory()
    staff = UserFactory(is_staff=True)
    returning = UserFactory(stripe_customer_id="cus_existing")
"""

import factory

from authentication.models import User


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for User model.

    Users are active, have a name and no cached processor customer.
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f"learner{n}@example.com")
    first_name = factory.Faker("first_name")
    last_name = factory.Faker("last_name")
    is_active = True
    is_staff = False
    metadata = factory.LazyFunction(dict)
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
