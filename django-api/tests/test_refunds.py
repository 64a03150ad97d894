"""Integration tests for event refunds and refund settlement.

Run with: pytest tests/test_refunds.py -v
"""

import pytest

from tests.fakes import charge_refunded
from ticketing import models as orm


@pytest.fixture
def paid_purchases(buy_and_settle, make_user, ticket):
    return [buy_and_settle(make_user(f"fan-{n}"), ticket, 1 + n) for n in range(3)]


def funding_intent(purchase) -> str:
    return orm.Transaction.objects.get(purchase=purchase).payment_intent_id


@pytest.mark.django_db
class TestEventRefund:
    """Tests for POST /api/events/{event_id}/refund"""

    def test_one_failure_is_reported_and_others_are_requested(
        self, client_for, organizer, event, paid_purchases, fake_processor
    ):
        failing = paid_purchases[1]
        fake_processor.failing_refunds.add(funding_intent(failing))

        response = client_for(organizer).post(
            f"/api/events/{event.id}/refund", {"reason": "Venue closed"}, format="json"
        )

        assert response.status_code == 200
        assert sorted(response.data["requested"]) == sorted(
            str(p.id) for p in (paid_purchases[0], paid_purchases[2])
        )
        assert [f["purchase_id"] for f in response.data["failed"]] == [str(failing.id)]
        assert response.data["failed"][0]["code"] == "EXTERNAL_PROCESSOR_ERROR"

        for purchase in paid_purchases:
            purchase.refresh_from_db()
            assert purchase.status == "active"
        assert "refund_request" in paid_purchases[0].metadata
        assert "refund_request" in paid_purchases[2].metadata
        assert "refund_request" not in failing.metadata
        txn = orm.Transaction.objects.get(purchase=paid_purchases[0])
        assert txn.status == "success"
        assert txn.metadata["refund_request"]["reason"] == "Venue closed"

    def test_rerun_only_retries_unrequested(self, client_for, organizer, event, paid_purchases, fake_processor):
        failing = paid_purchases[1]
        fake_processor.failing_refunds.add(funding_intent(failing))
        client = client_for(organizer)
        client.post(f"/api/events/{event.id}/refund", {"reason": "Venue closed"}, format="json")
        fake_processor.failing_refunds.clear()

        response = client.post(f"/api/events/{event.id}/refund", {"reason": "Venue closed"}, format="json")

        assert response.data["requested"] == [str(failing.id)]
        assert len(response.data["skipped"]) == 2
        assert len(fake_processor.refunds) == 3

    def test_transferred_in_purchases_are_skipped(
        self, client_for, organizer, buyer, receiver, event, buy_and_settle, ticket
    ):
        purchase = buy_and_settle(buyer, ticket, 2)
        client_for(buyer).post(
            "/api/transfer",
            {"purchase_id": str(purchase.id), "receiver_id": receiver.pk, "mode": "all"},
            format="json",
        )

        response = client_for(organizer).post(
            f"/api/events/{event.id}/refund", {"reason": "Rain"}, format="json"
        )

        received = orm.Purchase.objects.get(buyer=receiver)
        assert response.data["requested"] == [str(purchase.id)]
        assert response.data["skipped"] == [str(received.id)]

    def test_only_creator_or_staff(self, client_for, buyer, staff_user, event):
        denied = client_for(buyer).post(f"/api/events/{event.id}/refund", {"reason": "x"}, format="json")
        assert denied.status_code == 403
        allowed = client_for(staff_user).post(f"/api/events/{event.id}/refund", {"reason": "x"}, format="json")
        assert allowed.status_code == 200


@pytest.mark.django_db
class TestRefundSettlement:
    """Tests for the processor's refund confirmation"""

    def test_refund_confirmation_refunds_and_restocks(
        self, client_for, post_webhook, organizer, event, ticket, paid_purchases
    ):
        client_for(organizer).post(f"/api/events/{event.id}/refund", {"reason": "Rain"}, format="json")
        purchase = paid_purchases[2]
        ticket.refresh_from_db()
        assert ticket.available == 4

        response = post_webhook(charge_refunded(funding_intent(purchase), purchase.total_price_cents))

        assert response.data["result"] == "applied"
        purchase.refresh_from_db()
        ticket.refresh_from_db()
        assert purchase.status == "refunded"
        assert ticket.available == 7
        assert orm.Transaction.objects.get(purchase=purchase).status == "refunded"

    def test_redelivered_refund_restocks_once(self, post_webhook, ticket, paid_purchases):
        purchase = paid_purchases[0]
        body = charge_refunded(funding_intent(purchase), purchase.total_price_cents)

        post_webhook(body)
        response = post_webhook(body)

        assert response.data["result"] == "duplicate"
        ticket.refresh_from_db()
        assert ticket.available == 5
