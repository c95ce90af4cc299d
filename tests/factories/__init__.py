"""Factory Boy definitions shared by the test-suite."""

from __future__ import annotations

from faker import Faker

faker = Faker()
Faker.seed(1234)
