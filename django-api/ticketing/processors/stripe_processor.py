"""Stripe adapter for the PaymentProcessor interface."""

import json
import logging
from typing import Any, Mapping

import stripe
from django.conf import settings

from ticketing.domain import Money
from ticketing.domain.errors import ExternalProcessorError, ValidationError
from ticketing.processors.interfaces import (
    PaymentIntent,
    PaymentProcessor,
    ProcessorEvent,
    ProcessorEventType,
    Refund,
)

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    "payment_intent.succeeded": ProcessorEventType.SETTLEMENT_SUCCEEDED,
    "payment_intent.payment_failed": ProcessorEventType.SETTLEMENT_FAILED,
    "payment_intent.canceled": ProcessorEventType.SETTLEMENT_CANCELLED,
    "charge.refunded": ProcessorEventType.REFUND_SUCCEEDED,
    "customer.subscription.updated": ProcessorEventType.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": ProcessorEventType.SUBSCRIPTION_CANCELLED,
}


class StripePaymentProcessor(PaymentProcessor):
    """Talks to Stripe through the module-level API."""

    def __init__(self) -> None:
        stripe.api_key = settings.STRIPE_SECRET_KEY
        self._webhook_secret = settings.STRIPE_WEBHOOK_SECRET

    def create_payment_intent(
        self,
        amount: Money,
        customer: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount.amount,
                currency=amount.currency,
                metadata={"customer": customer, **metadata},
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            logger.warning("Stripe payment intent creation failed: %s", exc.user_message or type(exc).__name__)
            raise ExternalProcessorError("Could not start the payment") from exc
        if not intent.id or not intent.client_secret:
            raise ExternalProcessorError("Payment processor returned an incomplete payment intent")
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret, amount=amount)

    def cancel_payment_intent(self, payment_intent_id: str) -> None:
        try:
            stripe.PaymentIntent.cancel(payment_intent_id)
        except stripe.StripeError as exc:
            logger.warning("Stripe refused to cancel %s: %s", payment_intent_id, type(exc).__name__)
            raise ExternalProcessorError("Could not cancel the payment") from exc

    def create_refund(
        self,
        payment_intent_id: str,
        amount: int | None,
        reason: str,
        idempotency_key: str,
    ) -> Refund:
        params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "reason": "requested_by_customer",
            "metadata": {"reason": reason},
            "idempotency_key": idempotency_key,
        }
        if amount is not None:
            params["amount"] = amount
        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as exc:
            logger.warning("Stripe refund for %s failed: %s", payment_intent_id, type(exc).__name__)
            raise ExternalProcessorError("Refund request was rejected by the payment processor") from exc
        return Refund(
            id=refund.id,
            payment_intent_id=payment_intent_id,
            amount=refund.amount,
            status=refund.status,
        )

    def get_processing_fee(self, payment_intent_id: str) -> int | None:
        try:
            intent = stripe.PaymentIntent.retrieve(
                payment_intent_id, expand=["latest_charge.balance_transaction"]
            )
        except stripe.StripeError as exc:
            logger.info("Fee lookup for %s failed: %s", payment_intent_id, type(exc).__name__)
            return None
        charge = getattr(intent, "latest_charge", None)
        if not charge or isinstance(charge, str):
            return None
        balance = getattr(charge, "balance_transaction", None)
        if not balance or isinstance(balance, str):
            return None
        return getattr(balance, "fee", None)

    def parse_event(self, payload: bytes, signature: str) -> ProcessorEvent:
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(body, signature, self._webhook_secret)
            envelope = json.loads(body)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise ValidationError("Invalid webhook signature or payload") from exc
        return self._normalize(envelope)

    @staticmethod
    def _normalize(envelope: dict[str, Any]) -> ProcessorEvent:
        raw_type = envelope.get("type", "")
        obj = envelope.get("data", {}).get("object", {})
        event_type = EVENT_TYPES.get(raw_type, ProcessorEventType.UNSUPPORTED)
        metadata = obj.get("metadata") or {}

        if event_type is ProcessorEventType.REFUND_SUCCEEDED:
            return ProcessorEvent(
                id=envelope.get("id", ""),
                type=event_type,
                raw_type=raw_type,
                payment_intent_id=obj.get("payment_intent"),
                amount=obj.get("amount_refunded"),
                currency=obj.get("currency"),
                metadata=metadata,
            )
        if event_type in (
            ProcessorEventType.SUBSCRIPTION_UPDATED,
            ProcessorEventType.SUBSCRIPTION_CANCELLED,
        ):
            return ProcessorEvent(
                id=envelope.get("id", ""),
                type=event_type,
                raw_type=raw_type,
                subscription_id=obj.get("id"),
                subscription_status=obj.get("status"),
                metadata=metadata,
            )
        amount = obj.get("amount_received") or obj.get("amount")
        return ProcessorEvent(
            id=envelope.get("id", ""),
            type=event_type,
            raw_type=raw_type,
            payment_intent_id=obj.get("id"),
            amount=amount,
            currency=obj.get("currency"),
            metadata=metadata,
        )
