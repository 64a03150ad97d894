"""Resale marketplace.

Listing does not move anything: the seller keeps using their purchase until a
sale settles. Checkout opens a payment intent and a pending resale
transaction; the settlement service performs the ownership move.
"""

import logging
import uuid

from ticketing.domain import (
    EventId,
    ListingId,
    ListingStatus,
    PaymentHandle,
    PurchaseId,
    PurchaseStatus,
    ResaleListing,
    ResaleRef,
    TransactionId,
    TransactionType,
    UserId,
)
from ticketing.domain.errors import (
    AccessDeniedError,
    ExternalProcessorError,
    InsufficientInventoryError,
    InvalidStateError,
    ListingNotFoundError,
    PurchaseNotFoundError,
    TicketNotFoundError,
    ValidationError,
)
from ticketing.processors.interfaces import PaymentProcessor
from ticketing.services.common import parse_id, require_price, require_quantity
from ticketing.stores.interfaces import (
    CatalogStore,
    PurchaseStore,
    ResaleStore,
    TransactionStore,
)

logger = logging.getLogger(__name__)

LISTING_SORTS = ("price_asc", "price_desc", "date_asc", "date_desc")


class ResaleService:
    """Service for resale listings and resale checkout."""

    def __init__(
        self,
        catalog: CatalogStore,
        purchases: PurchaseStore,
        resale: ResaleStore,
        transactions: TransactionStore,
        processor: PaymentProcessor,
        currency: str,
    ) -> None:
        self._catalog = catalog
        self._purchases = purchases
        self._resale = resale
        self._transactions = transactions
        self._processor = processor
        self._currency = currency

    def create_listing(
        self, seller_id: UserId, purchase_id: str, quantity: int, price: int
    ) -> ResaleListing:
        """Offer part or all of an active purchase for resale.

        Raises:
            AccessDeniedError: If the seller does not own the purchase.
            InvalidStateError: If the purchase is not active or the ticket is not resellable.
            ValidationError: If more units are listed than the purchase holds.
        """
        pid = parse_id(PurchaseId, purchase_id)
        units = require_quantity(quantity)
        unit_price = require_price(price, self._currency)
        purchase = self._purchases.get_purchase(pid)
        if purchase is None:
            raise PurchaseNotFoundError()
        if not purchase.is_owned_by(seller_id):
            raise AccessDeniedError("You can only resell tickets that you own")
        if purchase.status is not PurchaseStatus.ACTIVE:
            raise InvalidStateError(f"Purchase is {purchase.status.value}, not active")
        ticket = self._catalog.get_ticket(purchase.ticket_id)
        if ticket is None:
            raise TicketNotFoundError()
        if not ticket.resellable:
            raise InvalidStateError("This ticket is not eligible for resale")
        if units > purchase.quantity:
            raise ValidationError(f"You only have {purchase.quantity} tickets available to resell")

        listing = self._resale.create_listing(pid, units, unit_price)
        logger.info("Listing %s created for %s units of purchase %s", listing.id, units, pid)
        return listing

    def purchase(self, buyer_id: UserId, listing_id: str, quantity: int, price: int) -> PaymentHandle:
        """Start paying for units of a listing at the listed price.

        Raises:
            InvalidStateError: If the listing changed or the seller no longer holds the units.
            InsufficientInventoryError: If fewer units remain than requested.
        """
        listing = self.get_listing(listing_id)
        units = require_quantity(quantity)
        offered = require_price(price, self._currency)
        if listing.seller_id == buyer_id:
            raise ValidationError("You cannot buy your own listing")
        if listing.status is not ListingStatus.AVAILABLE:
            raise InvalidStateError(f"Listing is {listing.status.value}")
        if units > listing.available_quantity:
            raise InsufficientInventoryError(
                f"Only {listing.available_quantity} tickets remain on this listing"
            )
        if offered != listing.price:
            raise InvalidStateError("Listing price has changed")
        seller_purchase = self._purchases.get_purchase(listing.original_purchase_id)
        if (
            seller_purchase is None
            or seller_purchase.status is not PurchaseStatus.ACTIVE
            or seller_purchase.quantity < units
        ):
            raise InvalidStateError("Seller no longer holds the listed tickets")
        event = self._catalog.get_event(listing.event_id)
        if event is not None and not event.grants_access(buyer_id):
            raise AccessDeniedError("This event is private")

        total = listing.price.times(units)
        transaction_id = TransactionId(uuid.uuid4())
        intent = self._processor.create_payment_intent(
            total,
            customer=str(buyer_id),
            metadata={"listing_id": str(listing.id), "transaction_id": str(transaction_id)},
            idempotency_key=f"resale-{transaction_id}",
        )
        try:
            self._transactions.create_pending_transaction(
                transaction_id,
                buyer_id,
                TransactionType.RESALE_PURCHASE,
                total,
                intent.id,
                ResaleRef(listing.id),
                funded_purchase_id=None,
                metadata={
                    "quantity": units,
                    "unit_price_cents": listing.price.amount,
                    "seller_purchase_id": str(listing.original_purchase_id),
                },
            )
        except Exception:
            try:
                self._processor.cancel_payment_intent(intent.id)
            except ExternalProcessorError:
                logger.exception("Could not cancel orphaned payment intent %s", intent.id)
            raise
        logger.info("Opened resale checkout %s on listing %s", transaction_id, listing.id)
        return PaymentHandle(
            transaction_id=transaction_id,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=total,
        )

    def update_listing(
        self,
        seller_id: UserId,
        listing_id: str,
        price: int | None = None,
        quantity: int | None = None,
    ) -> ResaleListing:
        """Reprice or resize a listing that has not sold anything yet."""
        if price is None and quantity is None:
            raise ValidationError("Provide a price or a quantity to update")
        listing = self._owned_listing(seller_id, listing_id)
        if listing.status is not ListingStatus.AVAILABLE:
            raise InvalidStateError("Only available listings can be updated")
        if listing.units_sold > 0:
            raise InvalidStateError("Cannot update a listing after tickets have been sold")
        new_price = listing.price if price is None else require_price(price, self._currency)
        units = listing.quantity if quantity is None else require_quantity(quantity)
        purchase = self._purchases.get_purchase(listing.original_purchase_id)
        if purchase is None or purchase.status is not PurchaseStatus.ACTIVE:
            raise InvalidStateError("The listed purchase is no longer active")
        if units > purchase.quantity:
            raise ValidationError(f"You only have {purchase.quantity} tickets available to resell")

        updated = self._resale.update_listing(listing.id, new_price, units)
        if updated is None:
            raise InvalidStateError("Listing changed while it was being updated")
        return updated

    def cancel_listing(self, seller_id: UserId, listing_id: str) -> ResaleListing:
        listing = self._owned_listing(seller_id, listing_id)
        if listing.status is not ListingStatus.AVAILABLE:
            raise InvalidStateError("Only available listings can be cancelled")
        cancelled = self._resale.cancel_listing(listing.id)
        if cancelled is None:
            raise InvalidStateError("Listing changed while it was being cancelled")
        logger.info("Listing %s cancelled", listing.id)
        return cancelled

    def list_available(
        self,
        viewer_id: UserId,
        event_id: str | None = None,
        min_price: int | None = None,
        max_price: int | None = None,
        sort: str = "date_desc",
    ) -> list[ResaleListing]:
        if sort not in LISTING_SORTS:
            raise ValidationError(f"Sort must be one of {', '.join(LISTING_SORTS)}")
        eid = parse_id(EventId, event_id) if event_id else None
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("minPrice cannot exceed maxPrice")
        return self._resale.list_available_listings(viewer_id, eid, min_price, max_price, sort)

    def list_mine(self, seller_id: UserId, status: str | None = None) -> list[ResaleListing]:
        try:
            wanted = ListingStatus(status) if status else None
        except ValueError as exc:
            raise ValidationError("Unknown listing status") from exc
        return self._resale.list_listings_for_seller(seller_id, wanted)

    def get_listing(self, listing_id: str) -> ResaleListing:
        listing = self._resale.get_listing(parse_id(ListingId, listing_id))
        if listing is None:
            raise ListingNotFoundError()
        return listing

    def _owned_listing(self, seller_id: UserId, listing_id: str) -> ResaleListing:
        listing = self.get_listing(listing_id)
        if listing.seller_id != seller_id:
            raise AccessDeniedError("You can only manage your own listings")
        return listing
