"""Settlement: applies the payment processor's asynchronous notifications.

This is the only service that commits a purchase out of ``pending``. Every
transition is guarded by a compare-and-set on the current status inside one
unit of work, so the first delivery of a notification wins and redeliveries
are no-ops. Inconsistencies are recorded as settlement alerts and logged at
ERROR instead of being raised back to the processor.
"""

import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum

from django.utils import timezone

from ticketing.domain import (
    ListingStatus,
    Provenance,
    PurchaseId,
    PurchaseRef,
    PurchaseStatus,
    ResaleRef,
    SettlementOutcome,
    Transaction,
    TransactionId,
    TransactionStatus,
    TransactionType,
)
from ticketing.domain.errors import (
    ExternalProcessorError,
    InsufficientInventoryError,
    InvalidStateError,
    ListingNotFoundError,
    NotFoundError,
    PurchaseNotFoundError,
    TransactionNotFoundError,
)
from ticketing.processors.interfaces import PaymentProcessor, ProcessorEvent, ProcessorEventType
from ticketing.services.inventory import InventoryLedger
from ticketing.services.tokens import RedemptionTokenIssuer
from ticketing.stores.interfaces import (
    OwnershipStore,
    ResaleStore,
    SettlementStore,
    TransactionStore,
    UnitOfWork,
)

logger = logging.getLogger(__name__)

OUTCOMES = {
    ProcessorEventType.SETTLEMENT_SUCCEEDED: SettlementOutcome.SUCCEEDED,
    ProcessorEventType.SETTLEMENT_FAILED: SettlementOutcome.FAILED,
    ProcessorEventType.SETTLEMENT_CANCELLED: SettlementOutcome.CANCELLED,
}

TRANSACTION_STATUS_FOR = {
    SettlementOutcome.SUCCEEDED: TransactionStatus.SUCCESS,
    SettlementOutcome.FAILED: TransactionStatus.FAILED,
    SettlementOutcome.CANCELLED: TransactionStatus.CANCELLED,
}

PENDING = frozenset({TransactionStatus.PENDING})
REFUNDABLE = frozenset({TransactionStatus.PENDING, TransactionStatus.SUCCESS})
CHECKOUT_TYPES = frozenset({TransactionType.TICKET_PURCHASE, TransactionType.RESALE_PURCHASE})


class SettlementResult(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ALERTED = "alerted"


class SettlementService:
    """Service applying processor notifications to purchases and inventory."""

    def __init__(
        self,
        transactions: TransactionStore,
        settlement: SettlementStore,
        ownership: OwnershipStore,
        resale: ResaleStore,
        inventory: InventoryLedger,
        tokens: RedemptionTokenIssuer,
        processor: PaymentProcessor,
        uow: UnitOfWork,
        currency: str,
        pending_expiry: timedelta,
    ) -> None:
        self._transactions = transactions
        self._settlement = settlement
        self._ownership = ownership
        self._resale = resale
        self._inventory = inventory
        self._tokens = tokens
        self._processor = processor
        self._uow = uow
        self._currency = currency
        self._pending_expiry = pending_expiry

    def handle(self, event: ProcessorEvent) -> SettlementResult:
        """Apply one verified processor notification."""
        if event.type in OUTCOMES:
            return self._apply_settlement(event)
        if event.type is ProcessorEventType.REFUND_SUCCEEDED:
            return self._apply_refund(event)
        if event.type in (
            ProcessorEventType.SUBSCRIPTION_UPDATED,
            ProcessorEventType.SUBSCRIPTION_CANCELLED,
        ):
            return self._apply_subscription(event)
        logger.info("Ignoring unsupported processor event %s (%s)", event.id, event.raw_type)
        return SettlementResult.IGNORED

    def finalize(self, purchase_id: PurchaseId, outcome: SettlementOutcome) -> bool:
        """Settle a pending ordinary purchase.

        On success the purchase becomes active with a fresh redemption token
        and the ticket is debited; otherwise it is disabled. Returns False
        when the purchase had already left ``pending``.

        Raises:
            InsufficientInventoryError: If the debit would oversell. Nothing is written.
        """
        with self._uow.atomic():
            purchase = self._ownership.lock_purchase(purchase_id)
            if purchase is None:
                raise PurchaseNotFoundError()
            if purchase.status is not PurchaseStatus.PENDING:
                logger.debug("Purchase %s already %s", purchase_id, purchase.status.value)
                return False
            funding = self._transactions.get_funding_transaction(purchase_id)

            if outcome is SettlementOutcome.SUCCEEDED:
                token = self._tokens.issue(
                    purchase.id, purchase.buyer_id, purchase.ticket_id, purchase.event_id
                )
                if not self._settlement.activate_purchase(purchase.id, token):
                    return False
                self._inventory.reserve_or_confirm(purchase.ticket_id, purchase.quantity)
            elif not self._settlement.disable_purchase(purchase.id, outcome.value):
                return False

            if funding is not None:
                self._settlement.transition_transaction(
                    funding.id, PENDING, TRANSACTION_STATUS_FOR[outcome]
                )
        logger.info("Purchase %s settled: %s", purchase_id, outcome.value)
        return True

    def finalize_resale(self, transaction_id: TransactionId, outcome: SettlementOutcome) -> bool:
        """Settle a pending resale checkout.

        On success the listing and the seller's purchase both shrink by the
        sold quantity and the buyer receives a new active purchase. Ticket
        inventory is untouched.

        Raises:
            InvalidStateError: If the listing changed or the seller no longer holds the units.
            InsufficientInventoryError: If the listing has fewer units left than were paid for.
        """
        with self._uow.atomic():
            txn = self._settlement.lock_transaction(transaction_id)
            if txn is None:
                raise TransactionNotFoundError()
            if txn.status is not TransactionStatus.PENDING:
                logger.debug("Resale transaction %s already %s", transaction_id, txn.status.value)
                return False
            if outcome is not SettlementOutcome.SUCCEEDED:
                self._settlement.transition_transaction(
                    txn.id, PENDING, TRANSACTION_STATUS_FOR[outcome]
                )
                logger.info("Resale transaction %s settled: %s", transaction_id, outcome.value)
                return True

            if not isinstance(txn.reference, ResaleRef):
                raise InvalidStateError("Transaction does not reference a resale listing")
            quantity = int(txn.metadata["quantity"])
            unit_price = int(txn.metadata["unit_price_cents"])

            listing = self._resale.lock_listing(txn.reference.listing_id)
            if listing is None:
                raise ListingNotFoundError()
            if listing.status is not ListingStatus.AVAILABLE or listing.price.amount != unit_price:
                raise InvalidStateError("Resale listing changed before the payment settled")
            if quantity > listing.available_quantity:
                raise InsufficientInventoryError("Not enough resale tickets remain")

            seller_purchase = self._ownership.lock_purchase(listing.original_purchase_id)
            if (
                seller_purchase is None
                or seller_purchase.status is not PurchaseStatus.ACTIVE
                or seller_purchase.quantity < quantity
            ):
                raise InvalidStateError("Seller no longer holds the listed tickets")

            if not self._resale.consume_listing(listing.id, quantity):
                raise InsufficientInventoryError("Not enough resale tickets remain")
            remaining = self._ownership.shrink_purchase(
                seller_purchase.id, quantity, Provenance.RESALE
            )
            if remaining is None:
                raise InvalidStateError("Seller no longer holds the listed tickets")
            self._resale.cap_open_listings(seller_purchase.id, remaining.quantity)

            new_id = PurchaseId(uuid.uuid4())
            token = self._tokens.issue(new_id, txn.user_id, listing.ticket_id, listing.event_id)
            self._ownership.create_active_purchase(
                new_id,
                listing.ticket_id,
                listing.event_id,
                txn.user_id,
                quantity,
                listing.price.times(quantity),
                token,
                Provenance.RESALE,
                {"listing_id": str(listing.id), "seller_purchase_id": str(seller_purchase.id)},
            )
            self._resale.record_sale(listing.id, txn.user_id, new_id, quantity)
            self._settlement.transition_transaction(txn.id, PENDING, TransactionStatus.SUCCESS)
            self._settlement.link_transaction_purchase(txn.id, new_id)
        logger.info(
            "Resale of %s units from listing %s settled into purchase %s",
            quantity,
            listing.id,
            new_id,
        )
        return True

    def settle_refund(self, txn: Transaction, refunded_amount: int | None) -> bool:
        """Apply the processor's refund confirmation for a settled transaction.

        The transaction and its funded purchase become ``refunded``, the
        purchase's remaining units are credited back to the ticket and its
        open resale listings are cancelled. A checkout refunded before it
        settled (an oversold confirmation) has its pending purchase disabled
        instead, with no inventory effect.
        """
        with self._uow.atomic():
            current = self._settlement.lock_transaction(txn.id)
            if current is None:
                raise TransactionNotFoundError()
            changed = self._settlement.transition_transaction(
                txn.id,
                REFUNDABLE,
                TransactionStatus.REFUNDED,
                {"refunded_amount": refunded_amount, "refunded_at": timezone.now().isoformat()},
            )
            if not changed:
                logger.debug("Transaction %s refund already applied", txn.id)
                return False
            if current.type in CHECKOUT_TYPES and current.funded_purchase_id is not None:
                if current.status is TransactionStatus.PENDING:
                    self._settlement.disable_purchase(current.funded_purchase_id, "refunded")
                else:
                    before = self._settlement.refund_purchase(current.funded_purchase_id)
                    if before is not None:
                        if before.quantity > 0:
                            self._inventory.release(before.ticket_id, before.quantity)
                        self._resale.cap_open_listings(before.id, 0)
        if current.status is TransactionStatus.PENDING:
            logger.warning("Transaction %s refunded before it settled", txn.id)
        else:
            logger.info("Transaction %s refunded", txn.id)
        return True

    def expire_pending(self, now: datetime | None = None) -> int:
        """Cancel checkouts that never settled within the expiry window.

        The processor-side intent is cancelled first; a refusal leaves the
        row pending so a late settlement can still apply.
        """
        cutoff = (now or timezone.now()) - self._pending_expiry
        expired = 0
        for txn in self._transactions.list_stale_pending(cutoff, CHECKOUT_TYPES):
            if txn.payment_intent_id:
                try:
                    self._processor.cancel_payment_intent(txn.payment_intent_id)
                except ExternalProcessorError:
                    logger.warning(
                        "Leaving transaction %s pending, processor refused to cancel %s",
                        txn.id,
                        txn.payment_intent_id,
                    )
                    continue
            with self._uow.atomic():
                if not self._settlement.transition_transaction(
                    txn.id, PENDING, TransactionStatus.CANCELLED, {"expired": True}
                ):
                    continue
                if isinstance(txn.reference, PurchaseRef):
                    self._settlement.disable_purchase(txn.reference.purchase_id, "expired")
            expired += 1
        if expired:
            logger.info("Expired %s pending checkouts older than %s", expired, cutoff)
        return expired

    def _apply_settlement(self, event: ProcessorEvent) -> SettlementResult:
        txn = self._lookup(event)
        if txn is None:
            return self._alert("transaction_not_found", event, "No transaction for payment intent")
        outcome = OUTCOMES[event.type]
        if outcome is SettlementOutcome.SUCCEEDED:
            currency = (event.currency or "").lower()
            if currency != txn.amount.currency or currency != self._currency:
                return self._alert(
                    "currency_mismatch",
                    event,
                    f"Expected {txn.amount.currency}, processor reported {event.currency}",
                )
            if event.amount is not None and event.amount != txn.amount.amount:
                return self._alert(
                    "amount_mismatch",
                    event,
                    f"Expected {txn.amount.amount}, processor reported {event.amount}",
                )

        try:
            if txn.type is TransactionType.TICKET_PURCHASE:
                if not isinstance(txn.reference, PurchaseRef):
                    return self._alert("bad_reference", event, "Ticket transaction without purchase")
                applied = self.finalize(txn.reference.purchase_id, outcome)
            elif txn.type is TransactionType.RESALE_PURCHASE:
                applied = self.finalize_resale(txn.id, outcome)
            else:
                applied = self._settlement.transition_transaction(
                    txn.id, PENDING, TRANSACTION_STATUS_FOR[outcome]
                )
        except InsufficientInventoryError as exc:
            return self._alert("oversell", event, exc.message)
        except (InvalidStateError, NotFoundError) as exc:
            return self._alert("inconsistent_state", event, exc.message)
        return SettlementResult.APPLIED if applied else SettlementResult.DUPLICATE

    def _apply_refund(self, event: ProcessorEvent) -> SettlementResult:
        txn = self._lookup(event)
        if txn is None:
            return self._alert("transaction_not_found", event, "No transaction for refunded payment")
        try:
            applied = self.settle_refund(txn, event.amount)
        except (InvalidStateError, NotFoundError) as exc:
            return self._alert("inconsistent_state", event, exc.message)
        return SettlementResult.APPLIED if applied else SettlementResult.DUPLICATE

    def _apply_subscription(self, event: ProcessorEvent) -> SettlementResult:
        txn = None
        if event.subscription_id:
            txn = self._transactions.get_transaction_by_subscription(event.subscription_id)
        if txn is None:
            return self._alert("transaction_not_found", event, "No transaction for subscription")
        if event.type is ProcessorEventType.SUBSCRIPTION_UPDATED:
            self._transactions.annotate_transaction(
                txn.id, "subscription_status", event.subscription_status
            )
            return SettlementResult.APPLIED
        changed = self._settlement.transition_transaction(
            txn.id,
            frozenset({TransactionStatus.PENDING, TransactionStatus.SUCCESS}),
            TransactionStatus.CANCELLED,
            {"subscription_status": event.subscription_status},
        )
        return SettlementResult.APPLIED if changed else SettlementResult.DUPLICATE

    def _lookup(self, event: ProcessorEvent) -> Transaction | None:
        if not event.payment_intent_id:
            return None
        return self._transactions.get_transaction_by_intent(event.payment_intent_id)

    def _alert(self, kind: str, event: ProcessorEvent, detail: str) -> SettlementResult:
        reference = event.payment_intent_id or event.subscription_id or ""
        logger.error(
            "Settlement alert %s for %s (event %s, %s): %s",
            kind,
            reference,
            event.id,
            event.raw_type,
            detail,
        )
        self._settlement.record_alert(kind, reference, f"{event.raw_type} {event.id}: {detail}")
        return SettlementResult.ALERTED
