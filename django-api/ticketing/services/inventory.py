"""Inventory ledger: the only writer of Ticket.available."""

import logging

from ticketing.domain import TicketId
from ticketing.domain.errors import (
    InsufficientInventoryError,
    InvalidStateError,
    TicketNotFoundError,
    ValidationError,
)
from ticketing.stores.interfaces import CatalogStore, InventoryStore

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Atomic debit and credit of a ticket's remaining units.

    Callers run these inside the same unit of work as the purchase status
    change they accompany.
    """

    def __init__(self, store: InventoryStore, catalog: CatalogStore) -> None:
        self._store = store
        self._catalog = catalog

    def reserve_or_confirm(self, ticket_id: TicketId, quantity: int) -> None:
        """Debit ``quantity`` units.

        Raises:
            InsufficientInventoryError: If fewer than ``quantity`` units remain.
            TicketNotFoundError: If the ticket does not exist.
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if self._store.debit_available(ticket_id, quantity):
            logger.debug("Debited %s units of ticket %s", quantity, ticket_id)
            return
        if self._catalog.get_ticket(ticket_id) is None:
            raise TicketNotFoundError()
        raise InsufficientInventoryError()

    def release(self, ticket_id: TicketId, quantity: int) -> None:
        """Credit ``quantity`` units back.

        Raises:
            InvalidStateError: If the credit would exceed the minted quantity.
            TicketNotFoundError: If the ticket does not exist.
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if self._store.credit_available(ticket_id, quantity):
            logger.debug("Credited %s units of ticket %s", quantity, ticket_id)
            return
        if self._catalog.get_ticket(ticket_id) is None:
            raise TicketNotFoundError()
        raise InvalidStateError("Cannot release more tickets than were sold")
