"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/models.py
and the services; counters are only mutated through the stores.
"""

import uuid

from django.conf import settings
from django.db import models

from ticketing.domain.models import (
    EventVisibility,
    ListingStatus,
    Provenance,
    PurchaseStatus,
    TransactionStatus,
    TransactionType,
    TransferMode,
    TransferStatus,
)


def _choices(enum_cls) -> list[tuple[str, str]]:
    return [(member.value, member.value.replace("_", " ").title()) for member in enum_cls]


class Event(models.Model):
    """Persistence model for events."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=255, blank=True)
    capacity = models.PositiveIntegerField()
    visibility = models.CharField(
        max_length=10, choices=_choices(EventVisibility), default=EventVisibility.PUBLIC.value
    )
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="created_events"
    )
    co_hosts = models.ManyToManyField(
        settings.AUTH_USER_MODEL, blank=True, related_name="co_hosted_events"
    )
    invited_guests = models.ManyToManyField(
        settings.AUTH_USER_MODEL, blank=True, related_name="invited_events"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name


class Ticket(models.Model):
    """Persistence model for a ticket category of an event."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="tickets")
    name = models.CharField(max_length=100)
    quantity = models.PositiveIntegerField()
    available = models.PositiveIntegerField()
    price_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="usd")
    is_resellable = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["event"], name="ticket_event_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available__lte=models.F("quantity")),
                name="ticket_available_lte_quantity",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.available}/{self.quantity})"


class Purchase(models.Model):
    """Persistence model for a buyer's claim on ticket units."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ticket = models.ForeignKey(Ticket, on_delete=models.PROTECT, related_name="purchases")
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="purchases")
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="ticket_purchases"
    )
    quantity = models.PositiveIntegerField()
    total_price_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=3)
    redemption_token = models.TextField(blank=True)
    provenance = models.CharField(
        max_length=10, choices=_choices(Provenance), default=Provenance.PURCHASE.value
    )
    status = models.CharField(
        max_length=12, choices=_choices(PurchaseStatus), default=PurchaseStatus.PENDING.value
    )
    metadata = models.JSONField(default=dict, blank=True)
    purchased_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-purchased_at"]
        indexes = [
            models.Index(fields=["buyer", "status"], name="purchase_buyer_status_idx"),
            models.Index(fields=["event", "status"], name="purchase_event_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Purchase {self.id} ({self.status})"


class ResaleListing(models.Model):
    """Persistence model for a resale offer of a settled purchase."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    original_purchase = models.ForeignKey(
        Purchase, on_delete=models.CASCADE, related_name="resale_listings"
    )
    quantity = models.PositiveIntegerField()
    available_quantity = models.PositiveIntegerField()
    price_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=3)
    status = models.CharField(
        max_length=10, choices=_choices(ListingStatus), default=ListingStatus.AVAILABLE.value
    )
    listed_at = models.DateTimeField(auto_now_add=True)
    sold_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-listed_at"]
        indexes = [
            models.Index(fields=["status", "price_cents"], name="listing_status_price_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available_quantity__lte=models.F("quantity")),
                name="listing_available_lte_quantity",
            ),
        ]

    def __str__(self) -> str:
        return f"Listing {self.id} ({self.available_quantity}/{self.quantity} {self.status})"


class ResaleSale(models.Model):
    """One confirmed sale out of a resale listing."""

    listing = models.ForeignKey(ResaleListing, on_delete=models.CASCADE, related_name="sales")
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="resale_buys"
    )
    purchase = models.OneToOneField(Purchase, on_delete=models.CASCADE, related_name="resale_sale")
    quantity = models.PositiveIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]


class Transfer(models.Model):
    """Ledger entry for a no-payment ownership move."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    original_purchase = models.ForeignKey(
        Purchase, on_delete=models.CASCADE, related_name="transfers_out"
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="sent_transfers"
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="received_transfers"
    )
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="transfers")
    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name="transfers")
    mode = models.CharField(max_length=10, choices=_choices(TransferMode), default=TransferMode.ALL.value)
    quantity = models.PositiveIntegerField()
    new_purchase = models.ForeignKey(
        Purchase, on_delete=models.SET_NULL, null=True, blank=True, related_name="transfers_in"
    )
    status = models.CharField(
        max_length=10, choices=_choices(TransferStatus), default=TransferStatus.PENDING.value
    )
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]


class Transaction(models.Model):
    """Payment record linking a processor payment intent to what it funds."""

    REFERENCE_SUBSCRIPTION = "subscription"
    REFERENCE_PURCHASE = "purchase"
    REFERENCE_RESALE = "resale"
    REFERENCE_PROMOTION = "promotion"
    REFERENCE_CHOICES = [
        (REFERENCE_SUBSCRIPTION, "Subscription"),
        (REFERENCE_PURCHASE, "Purchase"),
        (REFERENCE_RESALE, "Resale listing"),
        (REFERENCE_PROMOTION, "Promotion"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="payment_transactions"
    )
    type = models.CharField(max_length=20, choices=_choices(TransactionType))
    amount_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=3)
    status = models.CharField(
        max_length=10, choices=_choices(TransactionStatus), default=TransactionStatus.PENDING.value
    )
    payment_intent_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    processor_subscription_id = models.CharField(max_length=255, blank=True, db_index=True)
    reference_kind = models.CharField(max_length=20, choices=REFERENCE_CHOICES)
    reference_id = models.CharField(max_length=64)
    purchase = models.ForeignKey(
        Purchase,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
        help_text="Purchase funded by this payment, once it exists",
    )
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "type"], name="txn_user_type_idx"),
            models.Index(fields=["status", "created_at"], name="txn_status_created_idx"),
        ]

    def __str__(self) -> str:
        return f"Transaction {self.id} ({self.type} {self.status})"


class SettlementAlert(models.Model):
    """Inconsistency found while applying a processor notification."""

    kind = models.CharField(max_length=50)
    payment_intent_id = models.CharField(max_length=255, blank=True)
    detail = models.TextField(blank=True)
    resolved = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["resolved", "created_at"], name="alert_resolved_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.kind} ({self.payment_intent_id})"
