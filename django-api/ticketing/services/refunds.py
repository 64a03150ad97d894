"""Refund processor for cancelled events.

Refunds are requested, not declared: each eligible purchase and its funding
transaction are annotated with the refund request, and their statuses only
change when the processor's refund notification arrives.
"""

import logging

from django.utils import timezone

from ticketing.domain import (
    EventId,
    Purchase,
    RefundFailure,
    RefundReport,
    Transaction,
    TransactionStatus,
    UserId,
)
from ticketing.domain.errors import (
    AccessDeniedError,
    EventNotFoundError,
    ExternalProcessorError,
    ValidationError,
)
from ticketing.domain.models import REFUNDABLE_PURCHASE_STATUSES
from ticketing.processors.interfaces import PaymentProcessor
from ticketing.services.common import parse_id
from ticketing.stores.interfaces import CatalogStore, PurchaseStore, TransactionStore, UnitOfWork

logger = logging.getLogger(__name__)

REFUND_REQUEST_KEY = "refund_request"


class RefundService:
    """Service for bulk event refunds."""

    def __init__(
        self,
        catalog: CatalogStore,
        purchases: PurchaseStore,
        transactions: TransactionStore,
        processor: PaymentProcessor,
        uow: UnitOfWork,
    ) -> None:
        self._catalog = catalog
        self._purchases = purchases
        self._transactions = transactions
        self._processor = processor
        self._uow = uow

    def refund_event(
        self, event_id: str, reason: str, requested_by: UserId | None = None
    ) -> RefundReport:
        """Request a refund for every paid purchase of an event.

        Each purchase is handled on its own: a processor failure is recorded
        in the report and the batch moves on. Purchases without a settled
        payment (transfers, already requested ones) are skipped.

        Raises:
            EventNotFoundError: If the event does not exist.
            AccessDeniedError: If the requester is neither the creator nor staff.
        """
        eid = parse_id(EventId, event_id)
        event = self._catalog.get_event(eid)
        if event is None:
            raise EventNotFoundError()
        if requested_by is not None and not (
            requested_by == event.creator_id or self._catalog.is_staff(requested_by)
        ):
            raise AccessDeniedError("Only the event creator or staff can refund an event")
        if not reason or not reason.strip():
            raise ValidationError("A refund reason is required")

        requested, skipped, failed = [], [], []
        for purchase in self._purchases.list_purchases_for_event(eid, REFUNDABLE_PURCHASE_STATUSES):
            txn = self._refundable_transaction(purchase)
            if txn is None:
                skipped.append(purchase.id)
                continue
            amount = self._refund_amount(txn, purchase)
            if amount <= 0:
                skipped.append(purchase.id)
                continue
            try:
                refund = self._processor.create_refund(
                    txn.payment_intent_id,
                    amount,
                    reason.strip(),
                    idempotency_key=f"refund-{purchase.id}",
                )
            except ExternalProcessorError as exc:
                logger.warning("Refund for purchase %s failed: %s", purchase.id, exc)
                failed.append(RefundFailure(purchase.id, exc.code.value, exc.message))
                continue

            request = {
                "refund_id": refund.id,
                "amount": refund.amount,
                "reason": reason.strip(),
                "requested_at": timezone.now().isoformat(),
                "requested_by": requested_by.value if requested_by else None,
            }
            with self._uow.atomic():
                self._transactions.annotate_transaction(txn.id, REFUND_REQUEST_KEY, request)
                self._purchases.annotate_purchase(purchase.id, REFUND_REQUEST_KEY, request)
            requested.append(purchase.id)

        logger.info(
            "Refund of event %s: %s requested, %s skipped, %s failed",
            eid,
            len(requested),
            len(skipped),
            len(failed),
        )
        return RefundReport(
            event_id=eid,
            requested=tuple(requested),
            skipped=tuple(skipped),
            failed=tuple(failed),
        )

    def _refundable_transaction(self, purchase: Purchase) -> Transaction | None:
        if REFUND_REQUEST_KEY in purchase.metadata:
            return None
        txn = self._transactions.get_funding_transaction(purchase.id)
        if txn is None or not txn.payment_intent_id or txn.status is not TransactionStatus.SUCCESS:
            return None
        return txn

    def _refund_amount(self, txn: Transaction, purchase: Purchase) -> int:
        fee = self._processor.get_processing_fee(txn.payment_intent_id)
        if fee is None:
            return purchase.total_price.amount
        return max(txn.amount.amount - fee, 0)
