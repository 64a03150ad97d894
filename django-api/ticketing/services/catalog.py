"""Ticket catalog service - ticket types and their sales figures.

Services:
- Depend only on interfaces (stores)
- Validate domain invariants
- Perform orchestration and error mapping
- Return domain models or domain errors
"""

from dataclasses import dataclass

from ticketing.domain import Event, EventId, Ticket, TicketId, TicketSales, UserId
from ticketing.domain.errors import (
    AccessDeniedError,
    EventNotFoundError,
    InvalidStateError,
    TicketNotFoundError,
    ValidationError,
)
from ticketing.services.common import parse_id, require_price, require_quantity
from ticketing.stores.interfaces import CatalogStore, UnitOfWork


@dataclass(frozen=True)
class EventTicketSummary:
    event: Event
    tickets: list[TicketSales]

    @property
    def total_quantity(self) -> int:
        return sum(item.ticket.quantity.value for item in self.tickets)

    @property
    def total_sold(self) -> int:
        return sum(item.units_sold for item in self.tickets)

    @property
    def total_sales_amount(self) -> int:
        return sum(item.sales_amount for item in self.tickets)


class CatalogService:
    """Service for ticket catalog operations."""

    def __init__(self, store: CatalogStore, uow: UnitOfWork, currency: str) -> None:
        self._store = store
        self._uow = uow
        self._currency = currency

    def list_event_tickets(self, event_id: str, viewer_id: UserId) -> EventTicketSummary:
        """Return the event's tickets with sold counts and amounts.

        Raises:
            InvalidIdError: If the event_id is not a valid UUID.
            EventNotFoundError: If the event does not exist.
            AccessDeniedError: If the event is private and the viewer is not on it.
        """
        event = self._get_event(parse_id(EventId, event_id))
        if not event.grants_access(viewer_id):
            raise AccessDeniedError("This event is private")
        return EventTicketSummary(event=event, tickets=self._store.list_ticket_sales(event.id))

    def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = self._store.get_ticket(parse_id(TicketId, ticket_id))
        if ticket is None:
            raise TicketNotFoundError()
        return ticket

    def create_ticket(
        self,
        user_id: UserId,
        event_id: str,
        name: str,
        quantity: int,
        price: int,
        resellable: bool = False,
    ) -> Ticket:
        """Mint a new ticket type for an event.

        Raises:
            AccessDeniedError: If the user is not the creator or a co-host.
            ValidationError: If the event's capacity would be exceeded.
        """
        eid = parse_id(EventId, event_id)
        units = require_quantity(quantity)
        unit_price = require_price(price, self._currency, allow_zero=True)
        if not name or not name.strip():
            raise ValidationError("Ticket name is required")
        with self._uow.atomic():
            event = self._store.lock_event(eid)
            if event is None:
                raise EventNotFoundError()
            if not event.is_managed_by(user_id):
                raise AccessDeniedError("Only the event creator or a co-host can manage tickets")
            self._check_capacity(event, self._store.total_ticket_quantity(eid) + units)
            return self._store.create_ticket(eid, name.strip(), units, unit_price, resellable)

    def update_ticket(
        self,
        user_id: UserId,
        ticket_id: str,
        name: str | None = None,
        quantity: int | None = None,
        price: int | None = None,
        resellable: bool | None = None,
    ) -> Ticket:
        """Change a ticket type before any unit of it is sold.

        Raises:
            InvalidStateError: If the ticket already has purchases.
        """
        ticket = self.get_ticket(ticket_id)
        with self._uow.atomic():
            event = self._store.lock_event(ticket.event_id)
            if event is None:
                raise EventNotFoundError()
            if not event.is_managed_by(user_id):
                raise AccessDeniedError("Only the event creator or a co-host can manage tickets")
            ticket = self._store.get_ticket(ticket.id)
            if ticket is None:
                raise TicketNotFoundError()
            if ticket.sold > 0 or self._store.ticket_has_purchases(ticket.id):
                raise InvalidStateError("Tickets cannot be changed once sales have started")

            units = ticket.quantity.value if quantity is None else require_quantity(quantity)
            if units != ticket.quantity.value:
                others = self._store.total_ticket_quantity(event.id, exclude=ticket.id)
                self._check_capacity(event, others + units)
            new_price = ticket.price if price is None else require_price(price, self._currency, allow_zero=True)
            new_name = ticket.name if name is None else name.strip()
            if not new_name:
                raise ValidationError("Ticket name is required")
            return self._store.update_ticket(
                ticket.id,
                new_name,
                units,
                new_price,
                ticket.resellable if resellable is None else resellable,
            )

    def delete_ticket(self, user_id: UserId, ticket_id: str) -> None:
        ticket = self.get_ticket(ticket_id)
        with self._uow.atomic():
            event = self._store.lock_event(ticket.event_id)
            if event is None:
                raise EventNotFoundError()
            if not event.is_managed_by(user_id):
                raise AccessDeniedError("Only the event creator or a co-host can manage tickets")
            if self._store.ticket_has_purchases(ticket.id):
                raise InvalidStateError("Tickets with purchases cannot be deleted")
            self._store.delete_ticket(ticket.id)

    def _get_event(self, event_id: EventId) -> Event:
        event = self._store.get_event(event_id)
        if event is None:
            raise EventNotFoundError()
        return event

    @staticmethod
    def _check_capacity(event: Event, total_quantity: int) -> None:
        if total_quantity > event.capacity.value:
            raise ValidationError(
                f"Ticket quantities would exceed the event capacity of {event.capacity.value}"
            )
