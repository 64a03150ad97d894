"""Unit tests for the ticketing services with store doubles.

These test error handling and domain error mapping without a database.
Run with: pytest tests/test_services.py -v
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import create_autospec

import pytest

from tests.fakes import FakePaymentProcessor, InlineUnitOfWork
from ticketing.domain import (
    Capacity,
    Event,
    EventId,
    EventVisibility,
    Money,
    Provenance,
    Purchase,
    PurchaseId,
    PurchaseRef,
    PurchaseStatus,
    Ticket,
    TicketId,
    Transaction,
    TransactionId,
    TransactionStatus,
    TransactionType,
    UserId,
)
from ticketing.domain.errors import (
    AccessDeniedError,
    InsufficientInventoryError,
    InvalidIdError,
    InvalidStateError,
    TicketNotFoundError,
    ValidationError,
)
from ticketing.processors.interfaces import ProcessorEvent, ProcessorEventType
from ticketing.services.catalog import CatalogService
from ticketing.services.inventory import InventoryLedger
from ticketing.services.purchases import PurchaseService
from ticketing.services.refunds import RefundService
from ticketing.services.settlement import SettlementResult, SettlementService
from ticketing.services.tokens import RedemptionTokenIssuer
from ticketing.stores.interfaces import (
    CatalogStore,
    InventoryStore,
    OwnershipStore,
    PurchaseStore,
    ResaleStore,
    SettlementStore,
    TransactionStore,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ORGANIZER = UserId(1)
BUYER = UserId(2)


def make_event(visibility=EventVisibility.PUBLIC, capacity=100) -> Event:
    return Event(
        id=EventId(uuid.uuid4()),
        name="Launch Party",
        capacity=Capacity(capacity),
        visibility=visibility,
        creator_id=ORGANIZER,
    )


def make_ticket(event: Event, available=10, price=2500) -> Ticket:
    return Ticket(
        id=TicketId(uuid.uuid4()),
        event_id=event.id,
        name="General",
        quantity=Capacity(10),
        available=available,
        price=Money(price, "usd"),
        resellable=True,
        created_at=NOW,
    )


def make_purchase(ticket: Ticket, status=PurchaseStatus.ACTIVE, quantity=2, metadata=None) -> Purchase:
    return Purchase(
        id=PurchaseId(uuid.uuid4()),
        ticket_id=ticket.id,
        event_id=ticket.event_id,
        buyer_id=BUYER,
        quantity=quantity,
        total_price=ticket.price.times(quantity),
        redemption_token="",
        provenance=Provenance.PURCHASE,
        status=status,
        purchased_at=NOW,
        metadata=metadata or {},
    )


def make_transaction(purchase: Purchase, status=TransactionStatus.SUCCESS) -> Transaction:
    return Transaction(
        id=TransactionId(uuid.uuid4()),
        user_id=purchase.buyer_id,
        type=TransactionType.TICKET_PURCHASE,
        amount=purchase.total_price,
        status=status,
        payment_intent_id=f"pi_{uuid.uuid4().hex}",
        reference=PurchaseRef(purchase.id),
        created_at=NOW,
        funded_purchase_id=purchase.id,
    )


@pytest.fixture
def catalog():
    return create_autospec(CatalogStore, instance=True)


@pytest.fixture
def purchases():
    return create_autospec(PurchaseStore, instance=True)


@pytest.fixture
def transactions():
    return create_autospec(TransactionStore, instance=True)


@pytest.fixture
def tokens():
    return RedemptionTokenIssuer(salt="unit-tests")


class TestInventoryLedger:
    """Tests for InventoryLedger."""

    @pytest.fixture
    def inventory(self):
        return create_autospec(InventoryStore, instance=True)

    def test_reserve_debits_store(self, inventory, catalog):
        ticket_id = TicketId(uuid.uuid4())
        inventory.debit_available.return_value = True
        InventoryLedger(inventory, catalog).reserve_or_confirm(ticket_id, 3)
        inventory.debit_available.assert_called_once_with(ticket_id, 3)

    def test_reserve_raises_when_store_refuses(self, inventory, catalog):
        event = make_event()
        inventory.debit_available.return_value = False
        catalog.get_ticket.return_value = make_ticket(event, available=1)
        with pytest.raises(InsufficientInventoryError):
            InventoryLedger(inventory, catalog).reserve_or_confirm(TicketId(uuid.uuid4()), 2)

    def test_reserve_missing_ticket(self, inventory, catalog):
        inventory.debit_available.return_value = False
        catalog.get_ticket.return_value = None
        with pytest.raises(TicketNotFoundError):
            InventoryLedger(inventory, catalog).reserve_or_confirm(TicketId(uuid.uuid4()), 1)

    def test_release_beyond_mint_is_invalid(self, inventory, catalog):
        inventory.credit_available.return_value = False
        catalog.get_ticket.return_value = make_ticket(make_event())
        with pytest.raises(InvalidStateError):
            InventoryLedger(inventory, catalog).release(TicketId(uuid.uuid4()), 1)


class TestCatalogService:
    """Tests for CatalogService."""

    def test_list_event_tickets_invalid_id_raises_error(self, catalog):
        service = CatalogService(catalog, InlineUnitOfWork(), "usd")
        with pytest.raises(InvalidIdError):
            service.list_event_tickets("nope", BUYER)

    def test_private_event_hidden_from_strangers(self, catalog):
        event = make_event(visibility=EventVisibility.PRIVATE)
        catalog.get_event.return_value = event
        service = CatalogService(catalog, InlineUnitOfWork(), "usd")
        with pytest.raises(AccessDeniedError):
            service.list_event_tickets(str(event.id), BUYER)

    def test_create_ticket_over_capacity(self, catalog):
        event = make_event(capacity=50)
        catalog.lock_event.return_value = event
        catalog.total_ticket_quantity.return_value = 45
        service = CatalogService(catalog, InlineUnitOfWork(), "usd")
        with pytest.raises(ValidationError):
            service.create_ticket(ORGANIZER, str(event.id), "VIP", 6, 5000)
        catalog.create_ticket.assert_not_called()

    def test_create_ticket_requires_manager(self, catalog):
        event = make_event()
        catalog.lock_event.return_value = event
        service = CatalogService(catalog, InlineUnitOfWork(), "usd")
        with pytest.raises(AccessDeniedError):
            service.create_ticket(BUYER, str(event.id), "VIP", 1, 5000)


class TestPurchaseService:
    """Tests for PurchaseService checkout."""

    @pytest.fixture
    def service(self, catalog, purchases, transactions, tokens):
        return PurchaseService(
            catalog, purchases, transactions, FakePaymentProcessor(), InlineUnitOfWork(), tokens, "usd"
        )

    def test_invalid_ticket_id(self, service):
        with pytest.raises(InvalidIdError):
            service.create_pending_purchase(BUYER, "bad-id", 1)

    def test_missing_ticket(self, service, catalog):
        catalog.get_ticket.return_value = None
        with pytest.raises(TicketNotFoundError):
            service.create_pending_purchase(BUYER, str(uuid.uuid4()), 1)

    def test_private_event_requires_invitation(self, service, catalog):
        event = make_event(visibility=EventVisibility.PRIVATE)
        ticket = make_ticket(event)
        catalog.get_ticket.return_value = ticket
        catalog.get_event.return_value = event
        with pytest.raises(AccessDeniedError):
            service.create_pending_purchase(BUYER, str(ticket.id), 1)

    def test_quantity_above_available_opens_no_intent(self, service, catalog, fake_processor):
        event = make_event()
        ticket = make_ticket(event, available=2)
        catalog.get_ticket.return_value = ticket
        catalog.get_event.return_value = event
        with pytest.raises(InsufficientInventoryError):
            service.create_pending_purchase(BUYER, str(ticket.id), 3)
        assert fake_processor.intents == {}

    def test_checkout_records_pending_purchase_and_transaction(
        self, service, catalog, purchases, transactions, fake_processor
    ):
        event = make_event()
        ticket = make_ticket(event)
        catalog.get_ticket.return_value = ticket
        catalog.get_event.return_value = event

        handle = service.create_pending_purchase(BUYER, str(ticket.id), 3)

        assert handle.amount == Money(7500, "usd")
        assert handle.payment_intent_id in fake_processor.intents
        purchases.create_pending_purchase.assert_called_once()
        call = transactions.create_pending_transaction.call_args
        assert call.args[2] is TransactionType.TICKET_PURCHASE
        assert call.args[5] == PurchaseRef(handle.purchase_id)

    def test_failed_write_cancels_intent(self, service, catalog, purchases, fake_processor):
        event = make_event()
        ticket = make_ticket(event)
        catalog.get_ticket.return_value = ticket
        catalog.get_event.return_value = event
        purchases.create_pending_purchase.side_effect = RuntimeError("database unavailable")

        with pytest.raises(RuntimeError):
            service.create_pending_purchase(BUYER, str(ticket.id), 1)

        assert len(fake_processor.cancelled) == 1
        assert fake_processor.cancelled[0] in fake_processor.intents


class TestSettlementService:
    """Tests for SettlementService dispatch."""

    @pytest.fixture
    def settlement(self):
        return create_autospec(SettlementStore, instance=True)

    @pytest.fixture
    def ownership(self):
        return create_autospec(OwnershipStore, instance=True)

    @pytest.fixture
    def service(self, transactions, settlement, ownership, catalog, tokens):
        inventory = create_autospec(InventoryStore, instance=True)
        return SettlementService(
            transactions=transactions,
            settlement=settlement,
            ownership=ownership,
            resale=create_autospec(ResaleStore, instance=True),
            inventory=InventoryLedger(inventory, catalog),
            tokens=tokens,
            processor=FakePaymentProcessor(),
            uow=InlineUnitOfWork(),
            currency="usd",
            pending_expiry=timedelta(minutes=30),
        )

    def _event(self, event_type, intent="pi_123", amount=5000, currency="usd"):
        return ProcessorEvent(
            id="evt_1",
            type=event_type,
            raw_type="payment_intent.succeeded",
            payment_intent_id=intent,
            amount=amount,
            currency=currency,
        )

    def test_unknown_payment_reference_raises_alert(self, service, transactions, settlement):
        transactions.get_transaction_by_intent.return_value = None
        result = service.handle(self._event(ProcessorEventType.SETTLEMENT_SUCCEEDED))
        assert result is SettlementResult.ALERTED
        assert settlement.record_alert.call_args.args[0] == "transaction_not_found"

    def test_unsupported_event_is_ignored(self, service, transactions):
        result = service.handle(self._event(ProcessorEventType.UNSUPPORTED))
        assert result is SettlementResult.IGNORED
        transactions.get_transaction_by_intent.assert_not_called()

    def test_currency_mismatch_is_not_applied(self, service, transactions, settlement, ownership):
        purchase = make_purchase(make_ticket(make_event()), status=PurchaseStatus.PENDING)
        transactions.get_transaction_by_intent.return_value = make_transaction(
            purchase, status=TransactionStatus.PENDING
        )
        result = service.handle(self._event(ProcessorEventType.SETTLEMENT_SUCCEEDED, currency="eur"))
        assert result is SettlementResult.ALERTED
        ownership.lock_purchase.assert_not_called()

    def test_already_active_purchase_is_duplicate(self, service, transactions, settlement, ownership):
        purchase = make_purchase(make_ticket(make_event()), status=PurchaseStatus.ACTIVE)
        transactions.get_transaction_by_intent.return_value = make_transaction(purchase)
        ownership.lock_purchase.return_value = purchase

        result = service.handle(self._event(ProcessorEventType.SETTLEMENT_SUCCEEDED))

        assert result is SettlementResult.DUPLICATE
        settlement.activate_purchase.assert_not_called()

    def test_janitor_skips_rows_the_processor_will_not_cancel(
        self, service, transactions, settlement, fake_processor
    ):
        purchase = make_purchase(make_ticket(make_event()), status=PurchaseStatus.PENDING)
        txn = make_transaction(purchase, status=TransactionStatus.PENDING)
        transactions.list_stale_pending.return_value = [txn]
        fake_processor.refused_cancels.add(txn.payment_intent_id)

        assert service.expire_pending(now=NOW) == 0
        settlement.transition_transaction.assert_not_called()


class TestRefundService:
    """Tests for RefundService batch behaviour."""

    @pytest.fixture
    def service(self, catalog, purchases, transactions):
        return RefundService(catalog, purchases, transactions, FakePaymentProcessor(), InlineUnitOfWork())

    def test_one_processor_failure_does_not_abort_batch(
        self, service, catalog, purchases, transactions, fake_processor
    ):
        event = make_event()
        ticket = make_ticket(event)
        batch = [make_purchase(ticket) for _ in range(3)]
        funding = {p.id: make_transaction(p) for p in batch}
        catalog.get_event.return_value = event
        purchases.list_purchases_for_event.return_value = batch
        transactions.get_funding_transaction.side_effect = lambda pid: funding[pid]
        fake_processor.failing_refunds.add(funding[batch[1].id].payment_intent_id)

        report = service.refund_event(str(event.id), "Event cancelled", requested_by=ORGANIZER)

        assert report.requested == (batch[0].id, batch[2].id)
        assert [failure.purchase_id for failure in report.failed] == [batch[1].id]
        assert purchases.annotate_purchase.call_count == 2
        assert transactions.annotate_transaction.call_count == 2

    def test_refund_amount_is_net_of_processor_fee(
        self, service, catalog, purchases, transactions, fake_processor
    ):
        event = make_event()
        purchase = make_purchase(make_ticket(event))
        txn = make_transaction(purchase)
        catalog.get_event.return_value = event
        purchases.list_purchases_for_event.return_value = [purchase]
        transactions.get_funding_transaction.return_value = txn
        fake_processor.fees[txn.payment_intent_id] = 175

        service.refund_event(str(event.id), "Event cancelled")

        assert fake_processor.refunds[0]["refund"].amount == 5000 - 175

    def test_already_requested_purchases_are_skipped(
        self, service, catalog, purchases, transactions
    ):
        event = make_event()
        purchase = make_purchase(make_ticket(event), metadata={"refund_request": {"refund_id": "re_1"}})
        catalog.get_event.return_value = event
        purchases.list_purchases_for_event.return_value = [purchase]

        report = service.refund_event(str(event.id), "Event cancelled")

        assert report.skipped == (purchase.id,)
        transactions.get_funding_transaction.assert_not_called()

    def test_only_creator_or_staff_may_refund(self, service, catalog):
        event = make_event()
        catalog.get_event.return_value = event
        catalog.is_staff.return_value = False
        with pytest.raises(AccessDeniedError):
            service.refund_event(str(event.id), "Event cancelled", requested_by=BUYER)
