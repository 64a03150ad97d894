"""Payment processor interface.

Services depend on this abstraction only; the concrete adapter is chosen by
the TICKETING_PAYMENT_PROCESSOR setting.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from ticketing.domain import Money


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    amount: Money


@dataclass(frozen=True)
class Refund:
    id: str
    payment_intent_id: str
    amount: int
    status: str


class ProcessorEventType(str, Enum):
    SETTLEMENT_SUCCEEDED = "settlement-succeeded"
    SETTLEMENT_FAILED = "settlement-failed"
    SETTLEMENT_CANCELLED = "settlement-cancelled"
    REFUND_SUCCEEDED = "refund-succeeded"
    SUBSCRIPTION_UPDATED = "subscription-updated"
    SUBSCRIPTION_CANCELLED = "subscription-cancelled"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ProcessorEvent:
    """A verified notification, normalized away from the processor's wire format."""

    id: str
    type: ProcessorEventType
    raw_type: str
    payment_intent_id: str | None = None
    amount: int | None = None
    currency: str | None = None
    subscription_id: str | None = None
    subscription_status: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


class PaymentProcessor(ABC):
    """Outbound calls to the payment processor and webhook verification."""

    @abstractmethod
    def create_payment_intent(
        self,
        amount: Money,
        customer: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> PaymentIntent:
        """Open a payment intent the client completes directly with the processor."""
        ...

    @abstractmethod
    def cancel_payment_intent(self, payment_intent_id: str) -> None:
        ...

    @abstractmethod
    def create_refund(
        self,
        payment_intent_id: str,
        amount: int | None,
        reason: str,
        idempotency_key: str,
    ) -> Refund:
        ...

    @abstractmethod
    def get_processing_fee(self, payment_intent_id: str) -> int | None:
        """Return the fee the processor kept on the charge, or None when unknown."""
        ...

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str) -> ProcessorEvent:
        """Verify the envelope signature and normalize the event.

        Raises:
            ValidationError: If the signature or payload is invalid.
        """
        ...
