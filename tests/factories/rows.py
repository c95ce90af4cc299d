"""Raw store rows as returned by the hosted tables."""

from __future__ import annotations

from datetime import UTC, datetime

import factory

from tests.factories import faker


class SubscriptionRowFactory(factory.DictFactory):
    """A ``subscriptions`` row with every column populated."""

    id = factory.Sequence(lambda n: str(n + 1))
    user_id = "user-1"
    name = factory.Sequence(lambda n: f"Service {n}")
    price = 9900.0
    currency = "KRW"
    renew_date = "2030-01-15"
    start_date = "2023-01-15"
    payment_date = 15
    payment_card = None
    url = factory.LazyFunction(faker.url)
    color = "#E50914"
    category = "video"
    icon = "🎬"
    icon_image_url = None
    is_active = True
    created_at = factory.Sequence(lambda n: f"2024-01-{(n % 28) + 1:02d}T00:00:00+00:00")
    updated_at = factory.SelfAttribute("created_at")


class NotificationRowFactory(factory.DictFactory):
    """A ``notifications`` row."""

    id = factory.Faker("uuid4")
    user_id = "user-1"
    type = "info"
    title = factory.LazyFunction(lambda: faker.sentence(nb_words=3))
    message = factory.LazyFunction(faker.sentence)
    timestamp = factory.LazyFunction(lambda: datetime(2024, 1, 1, tzinfo=UTC).isoformat())


class ProfileRowFactory(factory.DictFactory):
    """A ``profiles`` row keyed by the owner's user id."""

    id = "user-1"
    username = factory.LazyFunction(faker.user_name)
    first_name = factory.LazyFunction(faker.first_name)
    last_name = factory.LazyFunction(faker.last_name)
    email = factory.LazyFunction(faker.email)
    photo_url = None
    cover_photo_url = None
    created_at = "2024-01-01T00:00:00+00:00"
    updated_at = factory.SelfAttribute("created_at")
