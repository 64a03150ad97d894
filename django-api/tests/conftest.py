"""Pytest configuration and shared fixtures."""

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from tests.fakes import VALID_SIGNATURE, FakePaymentProcessor, intent_succeeded
from ticketing import models as orm


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture(autouse=True)
def fake_processor():
    FakePaymentProcessor.reset()
    yield FakePaymentProcessor
    FakePaymentProcessor.reset()


@pytest.fixture
def make_user(db):
    def _make(username: str, **extra):
        return get_user_model().objects.create_user(username=username, password="pw", **extra)

    return _make


@pytest.fixture
def organizer(make_user):
    return make_user("organizer")


@pytest.fixture
def buyer(make_user):
    return make_user("buyer")


@pytest.fixture
def other_buyer(make_user):
    return make_user("other-buyer")


@pytest.fixture
def receiver(make_user):
    return make_user("receiver")


@pytest.fixture
def staff_user(make_user):
    return make_user("staff", is_staff=True)


@pytest.fixture
def event(organizer):
    return orm.Event.objects.create(name="Launch Party", capacity=100, creator=organizer)


@pytest.fixture
def private_event(organizer):
    return orm.Event.objects.create(
        name="Backstage", capacity=20, creator=organizer, visibility="private"
    )


@pytest.fixture
def ticket(event):
    return orm.Ticket.objects.create(
        event=event,
        name="General",
        quantity=10,
        available=10,
        price_cents=2500,
        currency="usd",
        is_resellable=True,
    )


@pytest.fixture
def client_for():
    """Return an APIClient authenticated as the given user."""

    def _client(user) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client


@pytest.fixture
def post_webhook(api_client):
    def _post(body: bytes, signature: str = VALID_SIGNATURE):
        return api_client.post(
            "/api/payments/webhook",
            data=body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )

    return _post


@pytest.fixture
def checkout(client_for):
    """Open a checkout through the API and return the payment handle."""

    def _checkout(user, ticket, quantity: int) -> dict:
        response = client_for(user).post(
            f"/api/tickets/{ticket.id}/purchase", {"quantity": quantity}, format="json"
        )
        assert response.status_code == 201, response.data
        return response.data

    return _checkout


@pytest.fixture
def buy_and_settle(checkout, post_webhook):
    """Check out and deliver the processor's success notification."""

    def _buy(user, ticket, quantity: int) -> orm.Purchase:
        handle = checkout(user, ticket, quantity)
        response = post_webhook(intent_succeeded(handle["payment_intent_id"], handle["amount"]))
        assert response.data["result"] == "applied"
        return orm.Purchase.objects.get(pk=handle["purchase_id"])

    return _buy
