"""Domain models representing persisted ticketing state.

These are pure domain objects with no API input rules.
Django ORM models are in ticketing/models.py (persistence layer).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from ticketing.domain.value_objects import (
    Capacity,
    EventId,
    ListingId,
    Money,
    PurchaseId,
    TicketId,
    TransactionId,
    TransferId,
    UserId,
)


class EventVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    USED = "used"
    TRANSFERRED = "transferred"
    REFUNDED = "refunded"
    DISABLED = "disabled"


# Purchases in these states still hold units the buyer may be refunded for.
REFUNDABLE_PURCHASE_STATUSES = frozenset(
    {PurchaseStatus.ACTIVE, PurchaseStatus.USED, PurchaseStatus.TRANSFERRED}
)


class Provenance(str, Enum):
    PURCHASE = "purchase"
    RESALE = "resale"
    TRANSFER = "transfer"


class ListingStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    CANCELLED = "cancelled"


class TransferMode(str, Enum):
    ALL = "all"
    QUANTITY = "quantity"


class TransferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"


class TransactionType(str, Enum):
    SUBSCRIPTION = "subscription"
    TICKET_PURCHASE = "ticket_purchase"
    RESALE_PURCHASE = "resale_purchase"
    PROMOTION = "promotion"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class SettlementOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SubscriptionRef:
    subscription_id: str


@dataclass(frozen=True)
class PurchaseRef:
    purchase_id: PurchaseId


@dataclass(frozen=True)
class ResaleRef:
    listing_id: ListingId


@dataclass(frozen=True)
class PromotionRef:
    promotion_id: str


# The domain object a Transaction funds.
TransactionReference = SubscriptionRef | PurchaseRef | ResaleRef | PromotionRef


@dataclass(frozen=True)
class Event:
    """Domain representation of an Event."""

    id: EventId
    name: str
    capacity: Capacity
    visibility: EventVisibility
    creator_id: UserId
    co_host_ids: frozenset[UserId] = frozenset()
    invited_guest_ids: frozenset[UserId] = frozenset()

    def is_managed_by(self, user_id: UserId) -> bool:
        return user_id == self.creator_id or user_id in self.co_host_ids

    def grants_access(self, user_id: UserId) -> bool:
        if self.visibility is EventVisibility.PUBLIC:
            return True
        return self.is_managed_by(user_id) or user_id in self.invited_guest_ids


@dataclass(frozen=True)
class Ticket:
    """Domain representation of a sellable ticket category."""

    id: TicketId
    event_id: EventId
    name: str
    quantity: Capacity
    available: int
    price: Money
    resellable: bool
    created_at: datetime

    @property
    def sold(self) -> int:
        return self.quantity.value - self.available


@dataclass(frozen=True)
class Purchase:
    """A buyer's claim on some quantity of a Ticket."""

    id: PurchaseId
    ticket_id: TicketId
    event_id: EventId
    buyer_id: UserId
    quantity: int
    total_price: Money
    redemption_token: str
    provenance: Provenance
    status: PurchaseStatus
    purchased_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def is_owned_by(self, user_id: UserId) -> bool:
        return self.buyer_id == user_id


@dataclass(frozen=True)
class ResaleSale:
    """One confirmed partial sale from a listing."""

    buyer_id: UserId
    purchase_id: PurchaseId
    quantity: int


@dataclass(frozen=True)
class ResaleListing:
    """An offer to sell part or all of a settled Purchase."""

    id: ListingId
    original_purchase_id: PurchaseId
    seller_id: UserId
    event_id: EventId
    ticket_id: TicketId
    quantity: int
    available_quantity: int
    price: Money
    status: ListingStatus
    listed_at: datetime
    sales: tuple[ResaleSale, ...] = ()
    sold_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def units_sold(self) -> int:
        return self.quantity - self.available_quantity


@dataclass(frozen=True)
class Transfer:
    """Ledger entry for a no-payment ownership move."""

    id: TransferId
    original_purchase_id: PurchaseId
    sender_id: UserId
    receiver_id: UserId
    event_id: EventId
    ticket_id: TicketId
    mode: TransferMode
    quantity: int
    new_purchase_id: PurchaseId | None
    status: TransferStatus
    created_at: datetime
    completed_at: datetime | None = None


@dataclass(frozen=True)
class Transaction:
    """Payment record joining the processor to the object it funds."""

    id: TransactionId
    user_id: UserId
    type: TransactionType
    amount: Money
    status: TransactionStatus
    payment_intent_id: str | None
    reference: TransactionReference
    created_at: datetime
    funded_purchase_id: PurchaseId | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TicketSales:
    """Sales statistics for one ticket type."""

    ticket: Ticket
    units_sold: int
    sales_amount: int

    @property
    def is_sold_out(self) -> bool:
        return self.ticket.available <= 0


@dataclass(frozen=True)
class PaymentHandle:
    """What a client needs to complete payment with the processor."""

    transaction_id: TransactionId
    payment_intent_id: str
    client_secret: str
    amount: Money
    purchase_id: PurchaseId | None = None


@dataclass(frozen=True)
class RefundFailure:
    purchase_id: PurchaseId
    code: str
    message: str


@dataclass(frozen=True)
class RefundReport:
    """Per-item outcome of a bulk event refund."""

    event_id: EventId
    requested: tuple[PurchaseId, ...] = ()
    skipped: tuple[PurchaseId, ...] = ()
    failed: tuple[RefundFailure, ...] = ()
