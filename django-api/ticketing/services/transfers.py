"""Transfer engine: moves already-settled units between users without payment."""

import logging
import uuid

from ticketing.domain import (
    Money,
    Provenance,
    PurchaseId,
    PurchaseStatus,
    Transfer,
    TransferMode,
    UserId,
)
from ticketing.domain.errors import (
    AccessDeniedError,
    InvalidStateError,
    PurchaseNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from ticketing.services.common import parse_id, require_quantity
from ticketing.services.tokens import RedemptionTokenIssuer
from ticketing.stores.interfaces import (
    CatalogStore,
    OwnershipStore,
    ResaleStore,
    TransferStore,
    UnitOfWork,
)

logger = logging.getLogger(__name__)

DIRECTIONS = ("sent", "received", "all")


class TransferService:
    """Service for ticket transfers between users."""

    def __init__(
        self,
        catalog: CatalogStore,
        ownership: OwnershipStore,
        transfers: TransferStore,
        resale: ResaleStore,
        uow: UnitOfWork,
        tokens: RedemptionTokenIssuer,
    ) -> None:
        self._catalog = catalog
        self._ownership = ownership
        self._transfers = transfers
        self._resale = resale
        self._uow = uow
        self._tokens = tokens

    def transfer(
        self,
        sender_id: UserId,
        purchase_id: str,
        receiver_id: int,
        mode: str = TransferMode.ALL.value,
        quantity: int | None = None,
    ) -> Transfer:
        """Give all or part of an active purchase to another user.

        The receiver gets a new active purchase at zero price with its own
        redemption token; the sender's purchase shrinks by the same amount
        and becomes ``transferred`` when nothing is left. Its open resale
        listings are capped to what it still holds. Ticket inventory does not
        change.
        """
        pid = parse_id(PurchaseId, purchase_id)
        try:
            transfer_mode = TransferMode(mode)
        except ValueError as exc:
            raise ValidationError("Mode must be 'all' or 'quantity'") from exc
        if receiver_id is None:
            raise ValidationError("Receiver is required")
        receiver = UserId(int(receiver_id))
        if receiver == sender_id:
            raise ValidationError("You cannot transfer tickets to yourself")
        requested = require_quantity(quantity) if transfer_mode is TransferMode.QUANTITY else None
        if not self._catalog.user_exists(receiver):
            raise UserNotFoundError()

        with self._uow.atomic():
            purchase = self._ownership.lock_purchase(pid)
            if purchase is None:
                raise PurchaseNotFoundError()
            if not purchase.is_owned_by(sender_id):
                raise AccessDeniedError("You can only transfer tickets that you own")
            if purchase.status is not PurchaseStatus.ACTIVE:
                raise InvalidStateError(f"Purchase is {purchase.status.value}, not active")
            units = purchase.quantity if requested is None else requested
            if units > purchase.quantity:
                raise ValidationError(f"You only have {purchase.quantity} tickets to transfer")

            new_id = PurchaseId(uuid.uuid4())
            self._ownership.create_active_purchase(
                new_id,
                purchase.ticket_id,
                purchase.event_id,
                receiver,
                units,
                Money(0, purchase.total_price.currency),
                self._tokens.issue(new_id, receiver, purchase.ticket_id, purchase.event_id),
                Provenance.TRANSFER,
                {"transferred_from": str(purchase.id), "sender": sender_id.value},
            )
            remaining = self._ownership.shrink_purchase(purchase.id, units, Provenance.TRANSFER)
            if remaining is None:
                raise InvalidStateError("Purchase changed during the transfer")
            capped = self._resale.cap_open_listings(purchase.id, remaining.quantity)
            if capped:
                logger.info(
                    "Capped %s resale listings of purchase %s to %s units",
                    capped,
                    purchase.id,
                    remaining.quantity,
                )
            transfer = self._transfers.create_completed_transfer(
                purchase.id,
                sender_id,
                receiver,
                purchase.event_id,
                purchase.ticket_id,
                transfer_mode,
                units,
                new_id,
            )
        logger.info("Transferred %s units of purchase %s to user %s", units, pid, receiver)
        return transfer

    def history(self, user_id: UserId, direction: str = "all") -> list[Transfer]:
        if direction not in DIRECTIONS:
            raise ValidationError("type must be one of sent, received, all")
        return self._transfers.list_transfers(user_id, direction)
