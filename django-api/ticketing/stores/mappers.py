"""Conversions between ORM rows and domain models."""

from ticketing import models as orm
from ticketing.domain import (
    Capacity,
    Event,
    EventId,
    EventVisibility,
    ListingId,
    ListingStatus,
    Money,
    PromotionRef,
    Provenance,
    Purchase,
    PurchaseId,
    PurchaseRef,
    PurchaseStatus,
    ResaleListing,
    ResaleRef,
    ResaleSale,
    SubscriptionRef,
    Ticket,
    TicketId,
    Transaction,
    TransactionId,
    TransactionReference,
    TransactionStatus,
    TransactionType,
    Transfer,
    TransferId,
    TransferMode,
    TransferStatus,
    UserId,
)


def event_to_domain(row: orm.Event) -> Event:
    return Event(
        id=EventId(row.id),
        name=row.name,
        capacity=Capacity(row.capacity),
        visibility=EventVisibility(row.visibility),
        creator_id=UserId(row.creator_id),
        co_host_ids=frozenset(UserId(pk) for pk in row.co_hosts.values_list("pk", flat=True)),
        invited_guest_ids=frozenset(
            UserId(pk) for pk in row.invited_guests.values_list("pk", flat=True)
        ),
    )


def ticket_to_domain(row: orm.Ticket) -> Ticket:
    return Ticket(
        id=TicketId(row.id),
        event_id=EventId(row.event_id),
        name=row.name,
        quantity=Capacity(row.quantity),
        available=row.available,
        price=Money(row.price_cents, row.currency),
        resellable=row.is_resellable,
        created_at=row.created_at,
    )


def purchase_to_domain(row: orm.Purchase) -> Purchase:
    return Purchase(
        id=PurchaseId(row.id),
        ticket_id=TicketId(row.ticket_id),
        event_id=EventId(row.event_id),
        buyer_id=UserId(row.buyer_id),
        quantity=row.quantity,
        total_price=Money(row.total_price_cents, row.currency),
        redemption_token=row.redemption_token,
        provenance=Provenance(row.provenance),
        status=PurchaseStatus(row.status),
        purchased_at=row.purchased_at,
        metadata=dict(row.metadata or {}),
    )


def listing_to_domain(row: orm.ResaleListing) -> ResaleListing:
    original = row.original_purchase
    return ResaleListing(
        id=ListingId(row.id),
        original_purchase_id=PurchaseId(original.id),
        seller_id=UserId(original.buyer_id),
        event_id=EventId(original.event_id),
        ticket_id=TicketId(original.ticket_id),
        quantity=row.quantity,
        available_quantity=row.available_quantity,
        price=Money(row.price_cents, row.currency),
        status=ListingStatus(row.status),
        listed_at=row.listed_at,
        sales=tuple(
            ResaleSale(
                buyer_id=UserId(sale.buyer_id),
                purchase_id=PurchaseId(sale.purchase_id),
                quantity=sale.quantity,
            )
            for sale in row.sales.all()
        ),
        sold_at=row.sold_at,
        cancelled_at=row.cancelled_at,
    )


def transfer_to_domain(row: orm.Transfer) -> Transfer:
    return Transfer(
        id=TransferId(row.id),
        original_purchase_id=PurchaseId(row.original_purchase_id),
        sender_id=UserId(row.sender_id),
        receiver_id=UserId(row.receiver_id),
        event_id=EventId(row.event_id),
        ticket_id=TicketId(row.ticket_id),
        mode=TransferMode(row.mode),
        quantity=row.quantity,
        new_purchase_id=PurchaseId(row.new_purchase_id) if row.new_purchase_id else None,
        status=TransferStatus(row.status),
        created_at=row.created_at,
        completed_at=row.completed_at,
    )


def reference_to_columns(reference: TransactionReference) -> tuple[str, str]:
    if isinstance(reference, PurchaseRef):
        return orm.Transaction.REFERENCE_PURCHASE, str(reference.purchase_id)
    if isinstance(reference, ResaleRef):
        return orm.Transaction.REFERENCE_RESALE, str(reference.listing_id)
    if isinstance(reference, SubscriptionRef):
        return orm.Transaction.REFERENCE_SUBSCRIPTION, reference.subscription_id
    if isinstance(reference, PromotionRef):
        return orm.Transaction.REFERENCE_PROMOTION, reference.promotion_id
    raise TypeError(f"Unsupported transaction reference: {reference!r}")


def reference_from_columns(kind: str, value: str) -> TransactionReference:
    if kind == orm.Transaction.REFERENCE_PURCHASE:
        return PurchaseRef(PurchaseId.from_string(value))
    if kind == orm.Transaction.REFERENCE_RESALE:
        return ResaleRef(ListingId.from_string(value))
    if kind == orm.Transaction.REFERENCE_SUBSCRIPTION:
        return SubscriptionRef(value)
    if kind == orm.Transaction.REFERENCE_PROMOTION:
        return PromotionRef(value)
    raise ValueError(f"Unknown transaction reference kind: {kind}")


def transaction_to_domain(row: orm.Transaction) -> Transaction:
    return Transaction(
        id=TransactionId(row.id),
        user_id=UserId(row.user_id),
        type=TransactionType(row.type),
        amount=Money(row.amount_cents, row.currency),
        status=TransactionStatus(row.status),
        payment_intent_id=row.payment_intent_id or None,
        reference=reference_from_columns(row.reference_kind, row.reference_id),
        created_at=row.created_at,
        funded_purchase_id=PurchaseId(row.purchase_id) if row.purchase_id else None,
        metadata=dict(row.metadata or {}),
    )
