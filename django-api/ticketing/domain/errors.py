"""Domain error codes for the ticketing module.

Every error carries a user-safe message. Handlers map the error category
(the direct subclass of DomainError) to an HTTP status.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    PURCHASE_NOT_FOUND = "PURCHASE_NOT_FOUND"
    LISTING_NOT_FOUND = "LISTING_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    TRANSACTION_NOT_FOUND = "TRANSACTION_NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    INVALID_STATE = "INVALID_STATE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_ID = "INVALID_ID"
    INVALID_REDEMPTION_TOKEN = "INVALID_REDEMPTION_TOKEN"
    EXTERNAL_PROCESSOR_ERROR = "EXTERNAL_PROCESSOR_ERROR"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    """An event, ticket, purchase, listing, user or transaction is absent."""


class EventNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.EVENT_NOT_FOUND, message="Event not found")


class TicketNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.TICKET_NOT_FOUND, message="Ticket not found")


class PurchaseNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.PURCHASE_NOT_FOUND, message="Purchase not found")


class ListingNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.LISTING_NOT_FOUND, message="Resale listing not found")


class UserNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.USER_NOT_FOUND, message="User not found")


class TransactionNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.TRANSACTION_NOT_FOUND,
            message="No transaction matches the payment reference",
        )


class AccessDeniedError(DomainError):
    """Raised on private-event access or cross-user mutation."""

    def __init__(self, message: str = "You do not have access to this resource") -> None:
        super().__init__(code=ErrorCode.ACCESS_DENIED, message=message)


class InsufficientInventoryError(DomainError):
    """Raised when a request would oversell a ticket or listing."""

    def __init__(self, message: str = "Not enough tickets available") -> None:
        super().__init__(code=ErrorCode.INSUFFICIENT_INVENTORY, message=message)


class InvalidStateError(DomainError):
    """Raised when the target is not in a valid source state."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.INVALID_STATE, message=message)


class ValidationError(DomainError):
    """Raised on malformed quantity, price or currency."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.VALIDATION_ERROR) -> None:
        super().__init__(code=code, message=message)


class InvalidIdError(ValidationError):
    """Raised when an identifier is not a valid UUID."""

    def __init__(self) -> None:
        super().__init__("Invalid identifier format", code=ErrorCode.INVALID_ID)


class InvalidRedemptionTokenError(ValidationError):
    """Raised when a redemption token fails integrity verification."""

    def __init__(self) -> None:
        super().__init__("Redemption token is not valid", code=ErrorCode.INVALID_REDEMPTION_TOKEN)


class ExternalProcessorError(DomainError):
    """Raised when the payment processor fails or answers unexpectedly."""

    def __init__(self, message: str = "Payment processor request failed") -> None:
        super().__init__(code=ErrorCode.EXTERNAL_PROCESSOR_ERROR, message=message)
