"""Input parsing shared by the ticketing services."""

from typing import TypeVar

from ticketing.domain import Money, Quantity
from ticketing.domain.errors import InvalidIdError, ValidationError
from ticketing.domain.value_objects import EntityId

IdT = TypeVar("IdT", bound=EntityId)


def parse_id(id_cls: type[IdT], raw: str) -> IdT:
    """Parse a raw identifier into a typed ID.

    Raises:
        InvalidIdError: If the value is not a valid UUID.
    """
    try:
        return id_cls.from_string(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidIdError() from exc


def require_quantity(value: int | None) -> int:
    if value is None or isinstance(value, bool):
        raise ValidationError("Quantity must be at least 1")
    try:
        return Quantity(int(value)).value
    except (TypeError, ValueError) as exc:
        raise ValidationError("Quantity must be at least 1") from exc


def require_price(amount: int | None, currency: str, allow_zero: bool = False) -> Money:
    if amount is None or isinstance(amount, bool):
        raise ValidationError("Price is required")
    try:
        price = Money(int(amount), currency)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Price must be a non-negative amount in minor units") from exc
    if price.amount == 0 and not allow_zero:
        raise ValidationError("Price must be greater than 0")
    return price
