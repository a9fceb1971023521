"""API test fixtures - TestClient over fully wired in-memory services."""

from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from core.wiring import build_services


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def email_client():
    client = Mock()
    client.send_invoice_reminder.return_value = True
    client.send_payment_receipt.return_value = True
    return client


@pytest.fixture
def services(registry, clock, email_client):
    """Services with a mocked email gateway; overrides the root fixture."""
    return build_services(registry, clock=clock, email_client=email_client)


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app, clerk_id):
    """Client acting as the office clerk."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-Staff-ID"] = str(clerk_id)
    return c


@pytest.fixture
def anonymous_client(app):
    """Client without a staff header (system actor)."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def act(client):
    """POST an action and return the response."""

    def _act(domain: str, action: str, data: dict | None = None, via=None):
        return (via or client).post(
            "/api/actions", json={"domain": domain, "action": action, "data": data or {}}
        )

    return _act


@pytest.fixture
def sent_invoice(act):
    """DO-1001 at 6% tax (1961.00), created and sent through the API."""
    response = act("invoice", "create", {
        "source": {"type": "orders", "order_ids": ["DO-1001"]},
        "terms": {"tax_rate_percent": 6},
        "send": True,
    })
    assert response.status_code == 200, response.text
    return response.json()["data"]
