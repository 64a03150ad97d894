"""Integration tests for checkout and payment settlement.

Run with: pytest tests/test_purchase_settlement.py -v
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from tests.fakes import charge_refunded, intent_failed, intent_succeeded, stripe_envelope
from ticketing import models as orm
from ticketing.dependencies import get_settlement_service
from ticketing.domain import PurchaseId, SettlementOutcome
from ticketing.domain.errors import InsufficientInventoryError
from ticketing.tasks import expire_pending_purchases


@pytest.mark.django_db
class TestCheckout:
    """Tests for POST /api/tickets/{ticket_id}/purchase"""

    def test_checkout_opens_pending_purchase_without_debit(self, checkout, buyer, ticket):
        handle = checkout(buyer, ticket, 3)

        purchase = orm.Purchase.objects.get(pk=handle["purchase_id"])
        txn = orm.Transaction.objects.get(payment_intent_id=handle["payment_intent_id"])
        ticket.refresh_from_db()
        assert handle["amount"] == 7500
        assert handle["client_secret"]
        assert purchase.status == "pending"
        assert purchase.redemption_token == ""
        assert txn.status == "pending"
        assert txn.reference_kind == orm.Transaction.REFERENCE_PURCHASE
        assert txn.reference_id == str(purchase.id)
        assert ticket.available == 10

    def test_checkout_more_than_available(self, client_for, buyer, ticket):
        response = client_for(buyer).post(
            f"/api/tickets/{ticket.id}/purchase", {"quantity": 11}, format="json"
        )
        assert response.status_code == 409
        assert response.data["error"]["code"] == "INSUFFICIENT_INVENTORY"
        assert not orm.Purchase.objects.exists()

    def test_checkout_invalid_ticket_id(self, client_for, buyer):
        response = client_for(buyer).post(
            "/api/tickets/not-a-uuid/purchase", {"quantity": 1}, format="json"
        )
        assert response.status_code == 400
        assert response.data["error"]["code"] == "INVALID_ID"

    def test_checkout_zero_quantity(self, client_for, buyer, ticket):
        response = client_for(buyer).post(
            f"/api/tickets/{ticket.id}/purchase", {"quantity": 0}, format="json"
        )
        assert response.status_code == 400
        assert response.data["error"]["code"] == "VALIDATION_ERROR"

    def test_private_event_requires_invitation(self, client_for, buyer, private_event):
        ticket = orm.Ticket.objects.create(
            event=private_event, name="Crew", quantity=5, available=5, price_cents=1000
        )
        response = client_for(buyer).post(
            f"/api/tickets/{ticket.id}/purchase", {"quantity": 1}, format="json"
        )
        assert response.status_code == 403

        private_event.invited_guests.add(buyer)
        response = client_for(buyer).post(
            f"/api/tickets/{ticket.id}/purchase", {"quantity": 1}, format="json"
        )
        assert response.status_code == 201

    def test_processor_failure_leaves_nothing_behind(self, client_for, buyer, ticket, fake_processor):
        fake_processor.fail_intents = True
        response = client_for(buyer).post(
            f"/api/tickets/{ticket.id}/purchase", {"quantity": 1}, format="json"
        )
        assert response.status_code == 502
        assert response.data["error"]["code"] == "EXTERNAL_PROCESSOR_ERROR"
        assert not orm.Purchase.objects.exists()
        assert not orm.Transaction.objects.exists()


@pytest.mark.django_db
class TestSettlementWebhook:
    """Tests for POST /api/payments/webhook"""

    def test_success_activates_purchase_and_debits_inventory(
        self, checkout, post_webhook, buyer, ticket
    ):
        handle = checkout(buyer, ticket, 3)

        response = post_webhook(intent_succeeded(handle["payment_intent_id"], 7500))

        assert response.status_code == 200
        assert response.data["result"] == "applied"
        purchase = orm.Purchase.objects.get(pk=handle["purchase_id"])
        ticket.refresh_from_db()
        assert ticket.available == 7
        assert purchase.status == "active"
        assert purchase.redemption_token
        txn = orm.Transaction.objects.get(payment_intent_id=handle["payment_intent_id"])
        assert txn.status == "success"

    def test_redelivered_success_is_a_no_op(self, checkout, post_webhook, buyer, ticket):
        handle = checkout(buyer, ticket, 3)
        body = intent_succeeded(handle["payment_intent_id"], 7500)

        post_webhook(body)
        token = orm.Purchase.objects.get(pk=handle["purchase_id"]).redemption_token
        response = post_webhook(body)

        assert response.status_code == 200
        assert response.data["result"] == "duplicate"
        ticket.refresh_from_db()
        assert ticket.available == 7
        assert orm.Purchase.objects.get(pk=handle["purchase_id"]).redemption_token == token

    def test_failure_disables_purchase(self, checkout, post_webhook, buyer, ticket):
        handle = checkout(buyer, ticket, 2)

        response = post_webhook(intent_failed(handle["payment_intent_id"], 5000))

        assert response.data["result"] == "applied"
        purchase = orm.Purchase.objects.get(pk=handle["purchase_id"])
        ticket.refresh_from_db()
        assert purchase.status == "disabled"
        assert ticket.available == 10
        assert orm.Transaction.objects.get(payment_intent_id=handle["payment_intent_id"]).status == "failed"

    def test_success_after_failure_is_ignored(self, checkout, post_webhook, buyer, ticket):
        handle = checkout(buyer, ticket, 2)
        post_webhook(intent_failed(handle["payment_intent_id"], 5000))

        response = post_webhook(intent_succeeded(handle["payment_intent_id"], 5000))

        assert response.data["result"] == "duplicate"
        ticket.refresh_from_db()
        assert ticket.available == 10

    def test_second_confirmation_for_last_units_is_alerted(
        self, checkout, post_webhook, buyer, other_buyer, ticket
    ):
        """Two buyers of 6 from 10, confirmed back to back: the second is an oversell alert."""
        first = checkout(buyer, ticket, 6)
        second = checkout(other_buyer, ticket, 6)

        assert post_webhook(intent_succeeded(first["payment_intent_id"], 15000)).data["result"] == "applied"
        response = post_webhook(intent_succeeded(second["payment_intent_id"], 15000))

        assert response.status_code == 200
        assert response.data["result"] == "alerted"
        ticket.refresh_from_db()
        assert ticket.available == 4
        assert orm.Purchase.objects.get(pk=first["purchase_id"]).status == "active"
        assert orm.Purchase.objects.get(pk=second["purchase_id"]).status == "pending"
        alert = orm.SettlementAlert.objects.get()
        assert alert.kind == "oversell"
        assert alert.payment_intent_id == second["payment_intent_id"]

    def test_refund_of_oversold_checkout_closes_it(
        self, checkout, post_webhook, buyer, other_buyer, ticket, fake_processor
    ):
        """The operator refunds the alerted payment; the pending checkout is closed out."""
        first = checkout(buyer, ticket, 6)
        second = checkout(other_buyer, ticket, 6)
        post_webhook(intent_succeeded(first["payment_intent_id"], 15000))
        post_webhook(intent_succeeded(second["payment_intent_id"], 15000))

        response = post_webhook(charge_refunded(second["payment_intent_id"], 15000))

        assert response.data["result"] == "applied"
        txn = orm.Transaction.objects.get(payment_intent_id=second["payment_intent_id"])
        purchase = orm.Purchase.objects.get(pk=second["purchase_id"])
        ticket.refresh_from_db()
        assert txn.status == "refunded"
        assert purchase.status == "disabled"
        assert purchase.metadata["disabled_reason"] == "refunded"
        assert ticket.available == 4

        orm.Transaction.objects.update(created_at=timezone.now() - timedelta(hours=2))
        assert expire_pending_purchases() == 0
        assert fake_processor.cancelled == []
        assert post_webhook(charge_refunded(second["payment_intent_id"], 15000)).data["result"] == "duplicate"

    def test_unknown_payment_reference_is_alerted(self, post_webhook):
        response = post_webhook(intent_succeeded("pi_unknown", 1000))
        assert response.status_code == 200
        assert response.data["result"] == "alerted"
        assert orm.SettlementAlert.objects.filter(kind="transaction_not_found").exists()

    def test_amount_mismatch_is_not_applied(self, checkout, post_webhook, buyer, ticket):
        handle = checkout(buyer, ticket, 2)
        response = post_webhook(intent_succeeded(handle["payment_intent_id"], 1))
        assert response.data["result"] == "alerted"
        assert orm.Purchase.objects.get(pk=handle["purchase_id"]).status == "pending"

    def test_currency_mismatch_is_not_applied(self, checkout, post_webhook, buyer, ticket):
        handle = checkout(buyer, ticket, 2)
        response = post_webhook(intent_succeeded(handle["payment_intent_id"], 5000, currency="eur"))
        assert response.data["result"] == "alerted"
        assert orm.SettlementAlert.objects.filter(kind="currency_mismatch").exists()

    def test_bad_signature_is_rejected(self, checkout, post_webhook, buyer, ticket):
        handle = checkout(buyer, ticket, 2)
        response = post_webhook(intent_succeeded(handle["payment_intent_id"], 5000), signature="forged")
        assert response.status_code == 400
        assert orm.Purchase.objects.get(pk=handle["purchase_id"]).status == "pending"

    def test_unsupported_event_type_is_acknowledged(self, post_webhook):
        response = post_webhook(stripe_envelope("invoice.created", {"id": "in_1"}))
        assert response.status_code == 200
        assert response.data["result"] == "ignored"


@pytest.mark.django_db
class TestFinalize:
    """Tests for SettlementService.finalize against the database."""

    def test_finalize_twice_debits_once(self, checkout, buyer, ticket):
        handle = checkout(buyer, ticket, 4)
        service = get_settlement_service()
        purchase_id = PurchaseId.from_string(handle["purchase_id"])

        assert service.finalize(purchase_id, SettlementOutcome.SUCCEEDED) is True
        assert service.finalize(purchase_id, SettlementOutcome.SUCCEEDED) is False

        ticket.refresh_from_db()
        assert ticket.available == 6

    def test_oversell_rolls_back_activation(self, checkout, buyer, ticket):
        handle = checkout(buyer, ticket, 4)
        orm.Ticket.objects.filter(pk=ticket.pk).update(available=3)

        with pytest.raises(InsufficientInventoryError):
            get_settlement_service().finalize(
                PurchaseId.from_string(handle["purchase_id"]), SettlementOutcome.SUCCEEDED
            )

        purchase = orm.Purchase.objects.get(pk=handle["purchase_id"])
        assert purchase.status == "pending"
        assert purchase.redemption_token == ""


@pytest.mark.django_db
class TestPendingExpiry:
    """Tests for the pending-checkout janitor task."""

    def test_stale_checkout_is_disabled(self, checkout, buyer, ticket, fake_processor):
        handle = checkout(buyer, ticket, 2)
        orm.Transaction.objects.update(created_at=timezone.now() - timedelta(hours=2))

        assert expire_pending_purchases() == 1

        purchase = orm.Purchase.objects.get(pk=handle["purchase_id"])
        txn = orm.Transaction.objects.get(payment_intent_id=handle["payment_intent_id"])
        ticket.refresh_from_db()
        assert purchase.status == "disabled"
        assert txn.status == "cancelled"
        assert ticket.available == 10
        assert fake_processor.cancelled == [handle["payment_intent_id"]]

    def test_fresh_checkout_is_kept(self, checkout, buyer, ticket):
        handle = checkout(buyer, ticket, 2)
        assert expire_pending_purchases() == 0
        assert orm.Purchase.objects.get(pk=handle["purchase_id"]).status == "pending"

    def test_processor_refusal_keeps_row_pending(self, checkout, buyer, ticket, fake_processor):
        handle = checkout(buyer, ticket, 2)
        orm.Transaction.objects.update(created_at=timezone.now() - timedelta(hours=2))
        fake_processor.refused_cancels.add(handle["payment_intent_id"])

        assert expire_pending_purchases() == 0
        assert orm.Purchase.objects.get(pk=handle["purchase_id"]).status == "pending"


@pytest.mark.django_db
class TestPurchaseReads:
    """Tests for GET /api/purchases/mine and /api/purchases/{id}"""

    def test_mine_lists_settled_purchases_only(self, client_for, checkout, buy_and_settle, buyer, ticket):
        settled = buy_and_settle(buyer, ticket, 1)
        checkout(buyer, ticket, 1)

        response = client_for(buyer).get("/api/purchases/mine")

        assert response.status_code == 200
        assert [item["id"] for item in response.data] == [str(settled.id)]

    def test_detail_hidden_from_other_users(self, client_for, buy_and_settle, buyer, other_buyer, organizer, ticket):
        purchase = buy_and_settle(buyer, ticket, 1)
        assert client_for(other_buyer).get(f"/api/purchases/{purchase.id}").status_code == 403
        assert client_for(organizer).get(f"/api/purchases/{purchase.id}").status_code == 200

    def test_unknown_purchase(self, client_for, buyer):
        response = client_for(buyer).get("/api/purchases/6c0b3a42-98a5-4d0b-8b63-3bd5d5c1f1aa")
        assert response.status_code == 404
        assert response.data["error"]["code"] == "PURCHASE_NOT_FOUND"


@pytest.mark.django_db
class TestRedemption:
    """Tests for POST /api/purchases/{id}/redeem"""

    def test_organizer_redeems_with_token(self, client_for, buy_and_settle, buyer, organizer, ticket):
        purchase = buy_and_settle(buyer, ticket, 2)

        response = client_for(organizer).post(
            f"/api/purchases/{purchase.id}/redeem",
            {"token": purchase.redemption_token},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["status"] == "used"
        again = client_for(organizer).post(f"/api/purchases/{purchase.id}/redeem", {}, format="json")
        assert again.status_code == 409

    def test_forged_token_is_rejected(self, client_for, buy_and_settle, buyer, organizer, ticket):
        purchase = buy_and_settle(buyer, ticket, 1)
        response = client_for(organizer).post(
            f"/api/purchases/{purchase.id}/redeem", {"token": "forged:token"}, format="json"
        )
        assert response.status_code == 400
        assert response.data["error"]["code"] == "INVALID_REDEMPTION_TOKEN"

    def test_buyer_cannot_redeem_own_ticket(self, client_for, buy_and_settle, buyer, ticket):
        purchase = buy_and_settle(buyer, ticket, 1)
        response = client_for(buyer).post(f"/api/purchases/{purchase.id}/redeem", {}, format="json")
        assert response.status_code == 403


@pytest.mark.django_db
class TestSubscriptionEvents:
    @pytest.fixture
    def subscription(self, buyer):
        return orm.Transaction.objects.create(
            user=buyer,
            type="subscription",
            amount_cents=999,
            currency="usd",
            status="success",
            processor_subscription_id="sub_123",
            reference_kind=orm.Transaction.REFERENCE_SUBSCRIPTION,
            reference_id="plan-pro",
        )

    def test_update_records_status(self, post_webhook, subscription):
        body = stripe_envelope(
            "customer.subscription.updated", {"id": "sub_123", "status": "past_due"}
        )
        response = post_webhook(body)
        assert response.data["result"] == "applied"
        subscription.refresh_from_db()
        assert subscription.status == "success"
        assert subscription.metadata["subscription_status"] == "past_due"

    def test_deletion_cancels_transaction_once(self, post_webhook, subscription):
        body = stripe_envelope(
            "customer.subscription.deleted", {"id": "sub_123", "status": "canceled"}
        )
        assert post_webhook(body).data["result"] == "applied"
        assert post_webhook(body).data["result"] == "duplicate"
        subscription.refresh_from_db()
        assert subscription.status == "cancelled"

    def test_unknown_subscription_is_alerted(self, post_webhook):
        body = stripe_envelope("customer.subscription.updated", {"id": "sub_missing", "status": "active"})
        assert post_webhook(body).data["result"] == "alerted"
        alert = orm.SettlementAlert.objects.get()
        assert alert.kind == "transaction_not_found"
        assert alert.payment_intent_id == "sub_missing"
