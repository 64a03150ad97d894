from ticketing.domain.models import (
    Event,
    EventVisibility,
    ListingStatus,
    PaymentHandle,
    Provenance,
    Purchase,
    PurchaseRef,
    PurchaseStatus,
    PromotionRef,
    RefundFailure,
    RefundReport,
    ResaleListing,
    ResaleRef,
    ResaleSale,
    SettlementOutcome,
    SubscriptionRef,
    Ticket,
    TicketSales,
    Transaction,
    TransactionReference,
    TransactionStatus,
    TransactionType,
    Transfer,
    TransferMode,
    TransferStatus,
)
from ticketing.domain.value_objects import (
    Capacity,
    EventId,
    ListingId,
    Money,
    PurchaseId,
    Quantity,
    TicketId,
    TransactionId,
    TransferId,
    UserId,
)

__all__ = [
    "Event",
    "EventVisibility",
    "ListingStatus",
    "PaymentHandle",
    "Provenance",
    "Purchase",
    "PurchaseRef",
    "PurchaseStatus",
    "PromotionRef",
    "RefundFailure",
    "RefundReport",
    "ResaleListing",
    "ResaleRef",
    "ResaleSale",
    "SettlementOutcome",
    "SubscriptionRef",
    "Ticket",
    "TicketSales",
    "Transaction",
    "TransactionReference",
    "TransactionStatus",
    "TransactionType",
    "Transfer",
    "TransferMode",
    "TransferStatus",
    "Capacity",
    "EventId",
    "ListingId",
    "Money",
    "PurchaseId",
    "Quantity",
    "TicketId",
    "TransactionId",
    "TransferId",
    "UserId",
]
