"""Shared fixtures for API tests."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from storebridge.application.fulfillment import InlineFulfillmentDispatcher
from storebridge.container import ServiceContainer, build_container
from storebridge.infrastructure.config import Settings
from storebridge.main import create_app


@pytest.fixture
def settings() -> Settings:
    """Settings for an in-memory app without the background sweep."""
    return Settings(
        storage_backend="memory",
        expiry_sweep_interval_seconds=0,
        verify_store_credentials=False,
        debug=True,
    )


@pytest.fixture
def container(settings, catalog, facilitator, connector, clock) -> ServiceContainer:
    """Container wired with the shared in-memory catalog and fakes."""
    return build_container(
        settings,
        catalog=catalog,
        facilitator=facilitator,
        fulfillment=InlineFulfillmentDispatcher(connector),
        clock=clock,
    )


@pytest.fixture
def client(container) -> Iterator[TestClient]:
    """Create test client around the container."""
    with TestClient(create_app(container=container)) as test_client:
        yield test_client


@pytest.fixture
def initiate_body() -> dict:
    return {
        "store_id": "store-1",
        "items": [{"product_id": "prod-1", "variant_id": "var-1", "quantity": 2}],
        "shipping_address": {"first_name": "Ada", "city": "Lisbon", "country": "PT"},
    }


@pytest.fixture
def pending_intent_id(client, initiate_body) -> str:
    """ID of a pending intent created through the API."""
    response = client.post("/api/checkout/initiate", json=initiate_body)
    assert response.status_code == 402
    return response.json()["orderIntent"]["id"]


