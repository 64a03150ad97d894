"""Purchase lifecycle, checkout side.

Checkout only ever opens a ``pending`` purchase. Moving it out of pending is
the settlement service's job, which is why this service is handed a
PurchaseStore and never a SettlementStore.
"""

import logging
import uuid

from django.utils import timezone

from ticketing.domain import (
    PaymentHandle,
    Purchase,
    PurchaseId,
    PurchaseRef,
    PurchaseStatus,
    TicketId,
    TransactionId,
    TransactionType,
    UserId,
)
from ticketing.domain.errors import (
    AccessDeniedError,
    EventNotFoundError,
    ExternalProcessorError,
    InsufficientInventoryError,
    InvalidStateError,
    PurchaseNotFoundError,
    TicketNotFoundError,
    ValidationError,
)
from ticketing.processors.interfaces import PaymentProcessor
from ticketing.services.common import parse_id, require_quantity
from ticketing.services.tokens import RedemptionTokenIssuer
from ticketing.stores.interfaces import CatalogStore, PurchaseStore, TransactionStore, UnitOfWork

logger = logging.getLogger(__name__)

HIDDEN_FROM_OWNER = frozenset(
    {PurchaseStatus.PENDING, PurchaseStatus.REFUNDED, PurchaseStatus.DISABLED}
)


class PurchaseService:
    """Service for ticket checkout and purchase reads."""

    def __init__(
        self,
        catalog: CatalogStore,
        purchases: PurchaseStore,
        transactions: TransactionStore,
        processor: PaymentProcessor,
        uow: UnitOfWork,
        tokens: RedemptionTokenIssuer,
        currency: str,
    ) -> None:
        self._catalog = catalog
        self._purchases = purchases
        self._transactions = transactions
        self._processor = processor
        self._uow = uow
        self._tokens = tokens
        self._currency = currency

    def create_pending_purchase(self, buyer_id: UserId, ticket_id: str, quantity: int) -> PaymentHandle:
        """Open a payment intent and record a pending purchase for it.

        Inventory is not debited here; settlement does that.

        Raises:
            TicketNotFoundError, EventNotFoundError: If the ticket or its event is gone.
            AccessDeniedError: If the event is private and the buyer is not on it.
            InsufficientInventoryError: If fewer units remain than requested.
            ExternalProcessorError: If the processor could not open the intent.
        """
        tid = parse_id(TicketId, ticket_id)
        units = require_quantity(quantity)
        ticket = self._catalog.get_ticket(tid)
        if ticket is None:
            raise TicketNotFoundError()
        event = self._catalog.get_event(ticket.event_id)
        if event is None:
            raise EventNotFoundError()
        if not event.grants_access(buyer_id):
            raise AccessDeniedError("This event is private")
        if units > ticket.available:
            raise InsufficientInventoryError(f"Only {ticket.available} tickets are available")
        if ticket.price.currency != self._currency:
            raise ValidationError("Ticket currency is not supported")
        total = ticket.price.times(units)
        if total.amount == 0:
            raise ValidationError("Free tickets cannot be bought through checkout")

        purchase_id = PurchaseId(uuid.uuid4())
        transaction_id = TransactionId(uuid.uuid4())
        intent = self._processor.create_payment_intent(
            total,
            customer=str(buyer_id),
            metadata={
                "purchase_id": str(purchase_id),
                "transaction_id": str(transaction_id),
                "ticket_id": str(tid),
                "event_id": str(event.id),
            },
            idempotency_key=f"checkout-{transaction_id}",
        )
        try:
            with self._uow.atomic():
                self._purchases.create_pending_purchase(
                    purchase_id, tid, event.id, buyer_id, units, total
                )
                self._transactions.create_pending_transaction(
                    transaction_id,
                    buyer_id,
                    TransactionType.TICKET_PURCHASE,
                    total,
                    intent.id,
                    PurchaseRef(purchase_id),
                    funded_purchase_id=purchase_id,
                    metadata={"quantity": units},
                )
        except Exception:
            self._cancel_quietly(intent.id)
            raise

        logger.info(
            "Opened checkout %s for %s x ticket %s (%s)", purchase_id, units, tid, total
        )
        return PaymentHandle(
            transaction_id=transaction_id,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=total,
            purchase_id=purchase_id,
        )

    def list_my_purchases(self, buyer_id: UserId) -> list[Purchase]:
        return self._purchases.list_purchases_for_buyer(buyer_id, exclude=HIDDEN_FROM_OWNER)

    def get_purchase(self, user_id: UserId, purchase_id: str) -> Purchase:
        """Return a purchase visible to its buyer or the event's managers."""
        purchase = self._get(parse_id(PurchaseId, purchase_id))
        if purchase.is_owned_by(user_id):
            return purchase
        event = self._catalog.get_event(purchase.event_id)
        if event is None or not event.is_managed_by(user_id):
            raise AccessDeniedError()
        return purchase

    def redeem(self, staff_id: UserId, purchase_id: str, token: str | None = None) -> Purchase:
        """Mark an active purchase used at the door.

        Raises:
            AccessDeniedError: If the caller does not manage the event.
            InvalidStateError: If the purchase is not active.
            InvalidRedemptionTokenError: If a token is given and does not match.
        """
        purchase = self._get(parse_id(PurchaseId, purchase_id))
        event = self._catalog.get_event(purchase.event_id)
        if event is None:
            raise EventNotFoundError()
        if not event.is_managed_by(staff_id):
            raise AccessDeniedError("Only the event creator or a co-host can redeem tickets")
        if purchase.status is not PurchaseStatus.ACTIVE:
            raise InvalidStateError(f"Purchase is {purchase.status.value}, not active")
        if token is not None:
            self._tokens.verify_for(token, purchase)
        used = self._purchases.mark_used(
            purchase.id,
            {"redeemed_by": staff_id.value, "redeemed_at": timezone.now().isoformat()},
        )
        if used is None:
            raise InvalidStateError("Purchase is no longer active")
        logger.info("Purchase %s redeemed by %s", purchase.id, staff_id)
        return used

    def _get(self, purchase_id: PurchaseId) -> Purchase:
        purchase = self._purchases.get_purchase(purchase_id)
        if purchase is None:
            raise PurchaseNotFoundError()
        return purchase

    def _cancel_quietly(self, payment_intent_id: str) -> None:
        try:
            self._processor.cancel_payment_intent(payment_intent_id)
        except ExternalProcessorError:
            logger.exception("Could not cancel orphaned payment intent %s", payment_intent_id)
