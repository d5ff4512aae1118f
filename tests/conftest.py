from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from .fakes import FakeStripeGateway


@pytest.fixture
def gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def client(gateway, monkeypatch):
    monkeypatch.setenv("APP_BASE_URL", "https://billing.example.com")

    from app import app
    from billing.stripe_client import get_stripe_gateway

    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
