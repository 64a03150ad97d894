"""Django ORM implementation of the ticketing stores.

Counters (Ticket.available, Purchase.quantity,
ResaleListing.available_quantity) are only changed with conditional
``UPDATE ... WHERE`` statements so that concurrent writers cannot push them
past their bounds. Read-modify-write of JSON metadata happens under
``select_for_update`` inside a savepoint.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Mapping

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F, Q, Sum
from django.utils import timezone

from ticketing import models as orm
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
    TransferStatus,
    UserId,
)
from ticketing.domain.models import REFUNDABLE_PURCHASE_STATUSES
from ticketing.stores.interfaces import (
    CatalogStore,
    InventoryStore,
    OwnershipStore,
    PurchaseStore,
    ResaleStore,
    SettlementStore,
    TransactionStore,
    TransferStore,
    UnitOfWork,
)
from ticketing.stores.mappers import (
    event_to_domain,
    listing_to_domain,
    purchase_to_domain,
    reference_to_columns,
    ticket_to_domain,
    transaction_to_domain,
    transfer_to_domain,
)

SOLD_STATUSES = [status.value for status in REFUNDABLE_PURCHASE_STATUSES]

LISTING_ORDERING = {
    "price_asc": ("price_cents", "listed_at"),
    "price_desc": ("-price_cents", "listed_at"),
    "date_asc": ("listed_at",),
    "date_desc": ("-listed_at",),
}


class DjangoUnitOfWork(UnitOfWork):
    """Database transaction boundary."""

    def atomic(self) -> AbstractContextManager[None]:
        return transaction.atomic()


class DjangoCatalogStore(CatalogStore):
    """PostgreSQL-backed event and ticket catalog."""

    def get_event(self, event_id: EventId) -> Event | None:
        row = orm.Event.objects.filter(pk=event_id.value).first()
        return event_to_domain(row) if row else None

    def lock_event(self, event_id: EventId) -> Event | None:
        row = orm.Event.objects.select_for_update().filter(pk=event_id.value).first()
        return event_to_domain(row) if row else None

    def user_exists(self, user_id: UserId) -> bool:
        return get_user_model().objects.filter(pk=user_id.value).exists()

    def is_staff(self, user_id: UserId) -> bool:
        return get_user_model().objects.filter(pk=user_id.value, is_staff=True).exists()

    def get_ticket(self, ticket_id: TicketId) -> Ticket | None:
        row = orm.Ticket.objects.filter(pk=ticket_id.value).first()
        return ticket_to_domain(row) if row else None

    def list_ticket_sales(self, event_id: EventId) -> list[TicketSales]:
        rows = orm.Ticket.objects.filter(event_id=event_id.value).annotate(
            sales_amount=Sum(
                "purchases__total_price_cents",
                filter=Q(
                    purchases__status__in=SOLD_STATUSES,
                    purchases__provenance=Provenance.PURCHASE.value,
                ),
            )
        )
        result = []
        for row in rows:
            ticket = ticket_to_domain(row)
            result.append(
                TicketSales(ticket=ticket, units_sold=ticket.sold, sales_amount=row.sales_amount or 0)
            )
        return result

    def total_ticket_quantity(self, event_id: EventId, exclude: TicketId | None = None) -> int:
        qs = orm.Ticket.objects.filter(event_id=event_id.value)
        if exclude is not None:
            qs = qs.exclude(pk=exclude.value)
        return qs.aggregate(total=Sum("quantity"))["total"] or 0

    def ticket_has_purchases(self, ticket_id: TicketId) -> bool:
        return orm.Purchase.objects.filter(ticket_id=ticket_id.value).exists()

    def create_ticket(
        self, event_id: EventId, name: str, quantity: int, price: Money, resellable: bool
    ) -> Ticket:
        row = orm.Ticket.objects.create(
            event_id=event_id.value,
            name=name,
            quantity=quantity,
            available=quantity,
            price_cents=price.amount,
            currency=price.currency,
            is_resellable=resellable,
        )
        return ticket_to_domain(row)

    def update_ticket(
        self, ticket_id: TicketId, name: str, quantity: int, price: Money, resellable: bool
    ) -> Ticket:
        orm.Ticket.objects.filter(pk=ticket_id.value).update(
            name=name,
            quantity=quantity,
            available=quantity,
            price_cents=price.amount,
            currency=price.currency,
            is_resellable=resellable,
            updated_at=timezone.now(),
        )
        return ticket_to_domain(orm.Ticket.objects.get(pk=ticket_id.value))

    def delete_ticket(self, ticket_id: TicketId) -> None:
        orm.Ticket.objects.filter(pk=ticket_id.value).delete()


class DjangoInventoryStore(InventoryStore):
    """Compare-and-update access to Ticket.available."""

    def debit_available(self, ticket_id: TicketId, quantity: int) -> bool:
        updated = orm.Ticket.objects.filter(pk=ticket_id.value, available__gte=quantity).update(
            available=F("available") - quantity, updated_at=timezone.now()
        )
        return updated == 1

    def credit_available(self, ticket_id: TicketId, quantity: int) -> bool:
        updated = orm.Ticket.objects.filter(
            pk=ticket_id.value, available__lte=F("quantity") - quantity
        ).update(available=F("available") + quantity, updated_at=timezone.now())
        return updated == 1


class DjangoPurchaseStore(PurchaseStore):
    """Purchase reads and checkout-side writes."""

    def get_purchase(self, purchase_id: PurchaseId) -> Purchase | None:
        row = orm.Purchase.objects.filter(pk=purchase_id.value).first()
        return purchase_to_domain(row) if row else None

    def list_purchases_for_buyer(
        self, buyer_id: UserId, exclude: frozenset[PurchaseStatus] = frozenset()
    ) -> list[Purchase]:
        qs = orm.Purchase.objects.filter(buyer_id=buyer_id.value).exclude(
            status__in=[status.value for status in exclude]
        )
        return [purchase_to_domain(row) for row in qs]

    def list_purchases_for_event(
        self, event_id: EventId, statuses: frozenset[PurchaseStatus]
    ) -> list[Purchase]:
        qs = orm.Purchase.objects.filter(
            event_id=event_id.value, status__in=[status.value for status in statuses]
        ).order_by("purchased_at")
        return [purchase_to_domain(row) for row in qs]

    def create_pending_purchase(
        self,
        purchase_id: PurchaseId,
        ticket_id: TicketId,
        event_id: EventId,
        buyer_id: UserId,
        quantity: int,
        total_price: Money,
    ) -> Purchase:
        row = orm.Purchase.objects.create(
            id=purchase_id.value,
            ticket_id=ticket_id.value,
            event_id=event_id.value,
            buyer_id=buyer_id.value,
            quantity=quantity,
            total_price_cents=total_price.amount,
            currency=total_price.currency,
            provenance=Provenance.PURCHASE.value,
            status=PurchaseStatus.PENDING.value,
        )
        return purchase_to_domain(row)

    def mark_used(self, purchase_id: PurchaseId, metadata: Mapping[str, Any]) -> Purchase | None:
        with transaction.atomic():
            row = orm.Purchase.objects.select_for_update().filter(pk=purchase_id.value).first()
            if row is None or row.status != PurchaseStatus.ACTIVE.value:
                return None
            row.status = PurchaseStatus.USED.value
            row.metadata = {**row.metadata, **metadata}
            row.save(update_fields=["status", "metadata", "updated_at"])
        return purchase_to_domain(row)

    def annotate_purchase(self, purchase_id: PurchaseId, key: str, value: Any) -> None:
        with transaction.atomic():
            row = orm.Purchase.objects.select_for_update().get(pk=purchase_id.value)
            row.metadata = {**row.metadata, key: value}
            row.save(update_fields=["metadata", "updated_at"])


class DjangoOwnershipStore(OwnershipStore):
    """Moves settled units between purchases."""

    def lock_purchase(self, purchase_id: PurchaseId) -> Purchase | None:
        row = orm.Purchase.objects.select_for_update().filter(pk=purchase_id.value).first()
        return purchase_to_domain(row) if row else None

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
        row = orm.Purchase.objects.create(
            id=purchase_id.value,
            ticket_id=ticket_id.value,
            event_id=event_id.value,
            buyer_id=buyer_id.value,
            quantity=quantity,
            total_price_cents=total_price.amount,
            currency=total_price.currency,
            redemption_token=redemption_token,
            provenance=provenance.value,
            status=PurchaseStatus.ACTIVE.value,
            metadata=dict(metadata),
        )
        return purchase_to_domain(row)

    def shrink_purchase(
        self, purchase_id: PurchaseId, quantity: int, moved_by: Provenance
    ) -> Purchase | None:
        with transaction.atomic():
            updated = orm.Purchase.objects.filter(
                pk=purchase_id.value,
                status=PurchaseStatus.ACTIVE.value,
                quantity__gte=quantity,
            ).update(quantity=F("quantity") - quantity, updated_at=timezone.now())
            if updated != 1:
                return None
            row = orm.Purchase.objects.select_for_update().get(pk=purchase_id.value)
            if row.quantity == 0:
                row.status = PurchaseStatus.TRANSFERRED.value
                row.metadata = {**row.metadata, "emptied_by": moved_by.value}
                row.save(update_fields=["status", "metadata", "updated_at"])
            return purchase_to_domain(row)


class DjangoTransactionStore(TransactionStore):
    """Payment transaction records."""

    def get_transaction(self, transaction_id: TransactionId) -> Transaction | None:
        row = orm.Transaction.objects.filter(pk=transaction_id.value).first()
        return transaction_to_domain(row) if row else None

    def get_transaction_by_intent(self, payment_intent_id: str) -> Transaction | None:
        row = orm.Transaction.objects.filter(payment_intent_id=payment_intent_id).first()
        return transaction_to_domain(row) if row else None

    def get_transaction_by_subscription(self, subscription_id: str) -> Transaction | None:
        row = (
            orm.Transaction.objects.filter(
                processor_subscription_id=subscription_id,
                type=TransactionType.SUBSCRIPTION.value,
            )
            .order_by("-created_at")
            .first()
        )
        return transaction_to_domain(row) if row else None

    def get_funding_transaction(self, purchase_id: PurchaseId) -> Transaction | None:
        row = (
            orm.Transaction.objects.filter(
                purchase_id=purchase_id.value,
                type__in=[
                    TransactionType.TICKET_PURCHASE.value,
                    TransactionType.RESALE_PURCHASE.value,
                ],
            )
            .order_by("created_at")
            .first()
        )
        return transaction_to_domain(row) if row else None

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
        kind, reference_id = reference_to_columns(reference)
        row = orm.Transaction.objects.create(
            id=transaction_id.value,
            user_id=user_id.value,
            type=type.value,
            amount_cents=amount.amount,
            currency=amount.currency,
            status=TransactionStatus.PENDING.value,
            payment_intent_id=payment_intent_id,
            reference_kind=kind,
            reference_id=reference_id,
            purchase_id=funded_purchase_id.value if funded_purchase_id else None,
            metadata=dict(metadata),
        )
        return transaction_to_domain(row)

    def annotate_transaction(self, transaction_id: TransactionId, key: str, value: Any) -> None:
        with transaction.atomic():
            row = orm.Transaction.objects.select_for_update().get(pk=transaction_id.value)
            row.metadata = {**row.metadata, key: value}
            row.save(update_fields=["metadata", "updated_at"])

    def list_stale_pending(
        self, created_before: datetime, types: frozenset[TransactionType]
    ) -> list[Transaction]:
        qs = orm.Transaction.objects.filter(
            status=TransactionStatus.PENDING.value,
            created_at__lt=created_before,
            type__in=[t.value for t in types],
        ).order_by("created_at")
        return [transaction_to_domain(row) for row in qs]


class DjangoSettlementStore(SettlementStore):
    """Status commits applied on processor settlement."""

    def lock_transaction(self, transaction_id: TransactionId) -> Transaction | None:
        row = orm.Transaction.objects.select_for_update().filter(pk=transaction_id.value).first()
        return transaction_to_domain(row) if row else None

    def transition_transaction(
        self,
        transaction_id: TransactionId,
        from_statuses: frozenset[TransactionStatus],
        to_status: TransactionStatus,
        metadata: Mapping[str, Any] | None = None,
    ) -> bool:
        with transaction.atomic():
            row = (
                orm.Transaction.objects.select_for_update()
                .filter(pk=transaction_id.value, status__in=[s.value for s in from_statuses])
                .first()
            )
            if row is None:
                return False
            row.status = to_status.value
            if metadata:
                row.metadata = {**row.metadata, **metadata}
            row.save(update_fields=["status", "metadata", "updated_at"])
        return True

    def activate_purchase(self, purchase_id: PurchaseId, redemption_token: str) -> bool:
        updated = orm.Purchase.objects.filter(
            pk=purchase_id.value, status=PurchaseStatus.PENDING.value
        ).update(
            status=PurchaseStatus.ACTIVE.value,
            redemption_token=redemption_token,
            updated_at=timezone.now(),
        )
        return updated == 1

    def disable_purchase(self, purchase_id: PurchaseId, reason: str) -> bool:
        with transaction.atomic():
            row = (
                orm.Purchase.objects.select_for_update()
                .filter(pk=purchase_id.value, status=PurchaseStatus.PENDING.value)
                .first()
            )
            if row is None:
                return False
            row.status = PurchaseStatus.DISABLED.value
            row.metadata = {**row.metadata, "disabled_reason": reason}
            row.save(update_fields=["status", "metadata", "updated_at"])
        return True

    def refund_purchase(self, purchase_id: PurchaseId) -> Purchase | None:
        with transaction.atomic():
            row = (
                orm.Purchase.objects.select_for_update()
                .filter(pk=purchase_id.value, status__in=SOLD_STATUSES)
                .first()
            )
            if row is None:
                return None
            before = purchase_to_domain(row)
            row.status = PurchaseStatus.REFUNDED.value
            row.metadata = {**row.metadata, "refunded_at": timezone.now().isoformat()}
            row.save(update_fields=["status", "metadata", "updated_at"])
        return before

    def link_transaction_purchase(self, transaction_id: TransactionId, purchase_id: PurchaseId) -> None:
        orm.Transaction.objects.filter(pk=transaction_id.value).update(
            purchase_id=purchase_id.value, updated_at=timezone.now()
        )

    def record_alert(self, kind: str, payment_intent_id: str, detail: str) -> None:
        orm.SettlementAlert.objects.create(
            kind=kind, payment_intent_id=payment_intent_id, detail=detail
        )


class DjangoResaleStore(ResaleStore):
    """Resale listings backed by the ORM."""

    @staticmethod
    def _listings():
        return orm.ResaleListing.objects.select_related("original_purchase").prefetch_related("sales")

    def get_listing(self, listing_id: ListingId) -> ResaleListing | None:
        row = self._listings().filter(pk=listing_id.value).first()
        return listing_to_domain(row) if row else None

    def lock_listing(self, listing_id: ListingId) -> ResaleListing | None:
        row = (
            self._listings()
            .select_for_update(of=("self",))
            .filter(pk=listing_id.value)
            .first()
        )
        return listing_to_domain(row) if row else None

    def list_available_listings(
        self,
        exclude_seller: UserId | None,
        event_id: EventId | None,
        min_price: int | None,
        max_price: int | None,
        order_by: str,
    ) -> list[ResaleListing]:
        qs = self._listings().filter(
            status=ListingStatus.AVAILABLE.value, available_quantity__gt=0
        )
        if exclude_seller is not None:
            qs = qs.exclude(original_purchase__buyer_id=exclude_seller.value)
        if event_id is not None:
            qs = qs.filter(original_purchase__event_id=event_id.value)
        if min_price is not None:
            qs = qs.filter(price_cents__gte=min_price)
        if max_price is not None:
            qs = qs.filter(price_cents__lte=max_price)
        qs = qs.order_by(*LISTING_ORDERING[order_by])
        return [listing_to_domain(row) for row in qs]

    def list_listings_for_seller(
        self, seller_id: UserId, status: ListingStatus | None
    ) -> list[ResaleListing]:
        qs = self._listings().filter(original_purchase__buyer_id=seller_id.value)
        if status is not None:
            qs = qs.filter(status=status.value)
        return [listing_to_domain(row) for row in qs.order_by("-listed_at")]

    def create_listing(self, purchase_id: PurchaseId, quantity: int, price: Money) -> ResaleListing:
        row = orm.ResaleListing.objects.create(
            original_purchase_id=purchase_id.value,
            quantity=quantity,
            available_quantity=quantity,
            price_cents=price.amount,
            currency=price.currency,
        )
        return self.get_listing(ListingId(row.id))

    def update_listing(
        self, listing_id: ListingId, price: Money, quantity: int
    ) -> ResaleListing | None:
        updated = orm.ResaleListing.objects.filter(
            pk=listing_id.value,
            status=ListingStatus.AVAILABLE.value,
            available_quantity=F("quantity"),
        ).update(
            price_cents=price.amount,
            currency=price.currency,
            quantity=quantity,
            available_quantity=quantity,
        )
        return self.get_listing(listing_id) if updated == 1 else None

    def cancel_listing(self, listing_id: ListingId) -> ResaleListing | None:
        updated = orm.ResaleListing.objects.filter(
            pk=listing_id.value, status=ListingStatus.AVAILABLE.value
        ).update(status=ListingStatus.CANCELLED.value, cancelled_at=timezone.now())
        return self.get_listing(listing_id) if updated == 1 else None

    def consume_listing(self, listing_id: ListingId, quantity: int) -> bool:
        with transaction.atomic():
            updated = orm.ResaleListing.objects.filter(
                pk=listing_id.value,
                status=ListingStatus.AVAILABLE.value,
                available_quantity__gte=quantity,
            ).update(available_quantity=F("available_quantity") - quantity)
            if updated != 1:
                return False
            orm.ResaleListing.objects.filter(
                pk=listing_id.value, available_quantity=0, status=ListingStatus.AVAILABLE.value
            ).update(status=ListingStatus.SOLD.value, sold_at=timezone.now())
        return True

    def cap_open_listings(self, purchase_id: PurchaseId, remaining: int) -> int:
        open_listings = orm.ResaleListing.objects.filter(
            original_purchase_id=purchase_id.value,
            status=ListingStatus.AVAILABLE.value,
            available_quantity__gt=remaining,
        )
        if remaining == 0:
            return open_listings.update(
                status=ListingStatus.CANCELLED.value, cancelled_at=timezone.now()
            )
        with transaction.atomic():
            # Unsold listings keep quantity == available_quantity so they stay editable.
            changed = open_listings.filter(available_quantity=F("quantity")).update(
                quantity=remaining, available_quantity=remaining
            )
            changed += open_listings.update(available_quantity=remaining)
        return changed

    def record_sale(
        self, listing_id: ListingId, buyer_id: UserId, purchase_id: PurchaseId, quantity: int
    ) -> None:
        orm.ResaleSale.objects.create(
            listing_id=listing_id.value,
            buyer_id=buyer_id.value,
            purchase_id=purchase_id.value,
            quantity=quantity,
        )


class DjangoTransferStore(TransferStore):
    """Transfer ledger backed by the ORM."""

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
        row = orm.Transfer.objects.create(
            original_purchase_id=original_purchase_id.value,
            sender_id=sender_id.value,
            receiver_id=receiver_id.value,
            event_id=event_id.value,
            ticket_id=ticket_id.value,
            mode=mode.value,
            quantity=quantity,
            new_purchase_id=new_purchase_id.value,
            status=TransferStatus.COMPLETED.value,
            completed_at=timezone.now(),
        )
        return transfer_to_domain(row)

    def list_transfers(self, user_id: UserId, direction: str) -> list[Transfer]:
        if direction == "sent":
            condition = Q(sender_id=user_id.value)
        elif direction == "received":
            condition = Q(receiver_id=user_id.value)
        else:
            condition = Q(sender_id=user_id.value) | Q(receiver_id=user_id.value)
        return [transfer_to_domain(row) for row in orm.Transfer.objects.filter(condition)]
