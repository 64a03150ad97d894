"""Domain primitives that enforce validity at creation time."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self
from uuid import UUID


@dataclass(frozen=True)
class EntityId:
    """UUID-backed identifier shared by the ticketing aggregates."""

    value: UUID

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(str(value)))

    def __str__(self) -> str:
        return str(self.value)


class EventId(EntityId):
    """Unique identifier for an Event."""


class TicketId(EntityId):
    """Unique identifier for a Ticket type."""


class PurchaseId(EntityId):
    """Unique identifier for a Purchase."""


class ListingId(EntityId):
    """Unique identifier for a ResaleListing."""


class TransferId(EntityId):
    """Unique identifier for a Transfer."""


class TransactionId(EntityId):
    """Unique identifier for a payment Transaction."""


@dataclass(frozen=True)
class UserId:
    """Identifier of a platform user (auth user primary key)."""

    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Money:
    """Amount in integral minor currency units (cents)."""

    amount: int
    currency: str

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("Money amount cannot be negative")
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError("Currency must be a three-letter ISO code")
        object.__setattr__(self, "currency", self.currency.lower())

    def times(self, factor: int) -> "Money":
        return Money(amount=self.amount * factor, currency=self.currency)

    def __str__(self) -> str:
        return f"{Decimal(self.amount) / 100:.2f} {self.currency.upper()}"


@dataclass(frozen=True)
class Capacity:
    """Non-negative integer representing capacity."""

    value: int

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError("Capacity cannot be negative")


@dataclass(frozen=True)
class Quantity:
    """Strictly positive number of ticket units."""

    value: int

    def __post_init__(self) -> None:
        if self.value < 1:
            raise ValueError("Quantity must be at least 1")
