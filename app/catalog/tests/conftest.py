"""
Test configuration and fixtures for catalog tests.
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from catalog.tests.factories import ProductFactory


@pytest.fixture
def buyer(db):
    return UserFactory()


@pytest.fixture
def product(db):
    return ProductFactory(
        price_tiers=[
            {"min": 1, "max": 10, "price": 500},
            {"min": 10, "max": None, "price": 450},
        ],
        stock=20,
    )


@pytest.fixture
def buyer_client(buyer):
    client = APIClient()
    refresh = RefreshToken.for_user(buyer)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client
