"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. Interfaces are split
by who may call them: checkout paths get PurchaseStore and
TransactionStore, which cannot move anything out of ``pending``; only the
settlement service is handed a SettlementStore.

Methods documented as compare-and-set return False (or None) instead of
raising when the row is not in the expected state; the caller decides
which domain error that means.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Mapping

from ticketing.domain import (
    Event,
    EventId,
    ListingId,
    ListingStatus,
    Money,
    Provenance,
    Purchase,
    PurchaseId,
    PurchaseStatus,
    ResaleListing,
    Ticket,
    TicketId,
    TicketSales,
    Transaction,
    TransactionId,
    TransactionReference,
    TransactionStatus,
    TransactionType,
    Transfer,
    TransferMode,
    UserId,
)


class UnitOfWork(ABC):
    """Groups store calls into one atomic transaction."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """Return a context manager; everything inside commits or rolls back together."""
        ...


class CatalogStore(ABC):
    """Events, ticket types and users."""

    @abstractmethod
    def get_event(self, event_id: EventId) -> Event | None:
        """Return an event by ID, or None if not found."""
        ...

    @abstractmethod
    def lock_event(self, event_id: EventId) -> Event | None:
        """Return an event and hold a row lock until the transaction ends."""
        ...

    @abstractmethod
    def user_exists(self, user_id: UserId) -> bool:
        ...

    @abstractmethod
    def is_staff(self, user_id: UserId) -> bool:
        ...

    @abstractmethod
    def get_ticket(self, ticket_id: TicketId) -> Ticket | None:
        ...

    @abstractmethod
    def list_ticket_sales(self, event_id: EventId) -> list[TicketSales]:
        """Return every ticket of an event with its settled sales totals."""
        ...

    @abstractmethod
    def total_ticket_quantity(self, event_id: EventId, exclude: TicketId | None = None) -> int:
        """Sum of minted quantity over the event's tickets."""
        ...

    @abstractmethod
    def ticket_has_purchases(self, ticket_id: TicketId) -> bool:
        """True if any purchase, in any status, references the ticket."""
        ...

    @abstractmethod
    def create_ticket(
        self, event_id: EventId, name: str, quantity: int, price: Money, resellable: bool
    ) -> Ticket:
        """Mint a ticket type with available equal to quantity."""
        ...

    @abstractmethod
    def update_ticket(
        self, ticket_id: TicketId, name: str, quantity: int, price: Money, resellable: bool
    ) -> Ticket:
        """Replace a ticket's attributes and reset available to quantity."""
        ...

    @abstractmethod
    def delete_ticket(self, ticket_id: TicketId) -> None:
        ...


class InventoryStore(ABC):
    """Atomic compare-and-update access to Ticket.available."""

    @abstractmethod
    def debit_available(self, ticket_id: TicketId, quantity: int) -> bool:
        """Decrement available by quantity if at least quantity remains."""
        ...

    @abstractmethod
    def credit_available(self, ticket_id: TicketId, quantity: int) -> bool:
        """Increment available by quantity if the result stays within the minted quantity."""
        ...


class PurchaseStore(ABC):
    """Reads and checkout-side writes for purchases."""

    @abstractmethod
    def get_purchase(self, purchase_id: PurchaseId) -> Purchase | None:
        ...

    @abstractmethod
    def list_purchases_for_buyer(
        self, buyer_id: UserId, exclude: frozenset[PurchaseStatus] = frozenset()
    ) -> list[Purchase]:
        ...

    @abstractmethod
    def list_purchases_for_event(
        self, event_id: EventId, statuses: frozenset[PurchaseStatus]
    ) -> list[Purchase]:
        ...

    @abstractmethod
    def create_pending_purchase(
        self,
        purchase_id: PurchaseId,
        ticket_id: TicketId,
        event_id: EventId,
        buyer_id: UserId,
        quantity: int,
        total_price: Money,
    ) -> Purchase:
        ...

    @abstractmethod
    def mark_used(self, purchase_id: PurchaseId, metadata: Mapping[str, Any]) -> Purchase | None:
        """Compare-and-set active -> used."""
        ...

    @abstractmethod
    def annotate_purchase(self, purchase_id: PurchaseId, key: str, value: Any) -> None:
        """Merge one key into the purchase metadata without touching its status."""
        ...


class OwnershipStore(ABC):
    """Moves already-debited units between purchases."""

    @abstractmethod
    def lock_purchase(self, purchase_id: PurchaseId) -> Purchase | None:
        ...

    @abstractmethod
    def create_active_purchase(
        self,
        purchase_id: PurchaseId,
        ticket_id: TicketId,
        event_id: EventId,
        buyer_id: UserId,
        quantity: int,
        total_price: Money,
        redemption_token: str,
        provenance: Provenance,
        metadata: Mapping[str, Any],
    ) -> Purchase:
        ...

    @abstractmethod
    def shrink_purchase(
        self, purchase_id: PurchaseId, quantity: int, moved_by: Provenance
    ) -> Purchase | None:
        """Compare-and-set decrement of an active purchase's quantity.

        A purchase that reaches zero becomes ``transferred``, the status for
        "no units left with this holder", whether they left by transfer or
        resale; ``moved_by`` is kept in metadata as ``emptied_by``. Returns
        None if the purchase is not active or holds fewer than quantity units.
        """
        ...


class TransactionStore(ABC):
    """Payment records."""

    @abstractmethod
    def get_transaction(self, transaction_id: TransactionId) -> Transaction | None:
        ...

    @abstractmethod
    def get_transaction_by_intent(self, payment_intent_id: str) -> Transaction | None:
        ...

    @abstractmethod
    def get_transaction_by_subscription(self, subscription_id: str) -> Transaction | None:
        """Return the most recent subscription transaction for a processor subscription."""
        ...

    @abstractmethod
    def get_funding_transaction(self, purchase_id: PurchaseId) -> Transaction | None:
        """Return the payment that funded a purchase, if any."""
        ...

    @abstractmethod
    def create_pending_transaction(
        self,
        transaction_id: TransactionId,
        user_id: UserId,
        type: TransactionType,
        amount: Money,
        payment_intent_id: str,
        reference: TransactionReference,
        funded_purchase_id: PurchaseId | None,
        metadata: Mapping[str, Any],
    ) -> Transaction:
        ...

    @abstractmethod
    def annotate_transaction(self, transaction_id: TransactionId, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def list_stale_pending(
        self, created_before: datetime, types: frozenset[TransactionType]
    ) -> list[Transaction]:
        ...


class SettlementStore(ABC):
    """Status commits that only processor settlement may perform."""

    @abstractmethod
    def lock_transaction(self, transaction_id: TransactionId) -> Transaction | None:
        ...

    @abstractmethod
    def transition_transaction(
        self,
        transaction_id: TransactionId,
        from_statuses: frozenset[TransactionStatus],
        to_status: TransactionStatus,
        metadata: Mapping[str, Any] | None = None,
    ) -> bool:
        """Compare-and-set the transaction status, merging metadata on success."""
        ...

    @abstractmethod
    def activate_purchase(self, purchase_id: PurchaseId, redemption_token: str) -> bool:
        """Compare-and-set pending -> active, storing the redemption token."""
        ...

    @abstractmethod
    def disable_purchase(self, purchase_id: PurchaseId, reason: str) -> bool:
        """Compare-and-set pending -> disabled."""
        ...

    @abstractmethod
    def refund_purchase(self, purchase_id: PurchaseId) -> Purchase | None:
        """Compare-and-set a refundable purchase to refunded.

        Returns the purchase as it was before the change, or None if it was
        not in a refundable status.
        """
        ...

    @abstractmethod
    def link_transaction_purchase(self, transaction_id: TransactionId, purchase_id: PurchaseId) -> None:
        ...

    @abstractmethod
    def record_alert(self, kind: str, payment_intent_id: str, detail: str) -> None:
        ...


class ResaleStore(ABC):
    """Resale listings."""

    @abstractmethod
    def get_listing(self, listing_id: ListingId) -> ResaleListing | None:
        ...

    @abstractmethod
    def lock_listing(self, listing_id: ListingId) -> ResaleListing | None:
        ...

    @abstractmethod
    def list_available_listings(
        self,
        exclude_seller: UserId | None,
        event_id: EventId | None,
        min_price: int | None,
        max_price: int | None,
        order_by: str,
    ) -> list[ResaleListing]:
        ...

    @abstractmethod
    def list_listings_for_seller(
        self, seller_id: UserId, status: ListingStatus | None
    ) -> list[ResaleListing]:
        ...

    @abstractmethod
    def create_listing(self, purchase_id: PurchaseId, quantity: int, price: Money) -> ResaleListing:
        ...

    @abstractmethod
    def update_listing(
        self, listing_id: ListingId, price: Money, quantity: int
    ) -> ResaleListing | None:
        """Compare-and-set on an available listing with nothing sold yet."""
        ...

    @abstractmethod
    def cancel_listing(self, listing_id: ListingId) -> ResaleListing | None:
        """Compare-and-set available -> cancelled."""
        ...

    @abstractmethod
    def consume_listing(self, listing_id: ListingId, quantity: int) -> bool:
        """Compare-and-decrement available_quantity; marks the listing sold at zero."""
        ...

    @abstractmethod
    def cap_open_listings(self, purchase_id: PurchaseId, remaining: int) -> int:
        """Shrink the purchase's available listings to at most ``remaining`` units.

        Listings left with nothing to sell are cancelled. Returns the number
        of listings changed.
        """
        ...

    @abstractmethod
    def record_sale(
        self, listing_id: ListingId, buyer_id: UserId, purchase_id: PurchaseId, quantity: int
    ) -> None:
        ...


class TransferStore(ABC):
    """Transfer ledger entries."""

    @abstractmethod
    def create_completed_transfer(
        self,
        original_purchase_id: PurchaseId,
        sender_id: UserId,
        receiver_id: UserId,
        event_id: EventId,
        ticket_id: TicketId,
        mode: TransferMode,
        quantity: int,
        new_purchase_id: PurchaseId,
    ) -> Transfer:
        ...

    @abstractmethod
    def list_transfers(self, user_id: UserId, direction: str) -> list[Transfer]:
        """direction is one of 'sent', 'received' or 'all'."""
        ...
