"""Background tasks for the ticketing app."""

import logging

from celery import shared_task

from ticketing.dependencies import get_settlement_service

logger = logging.getLogger(__name__)


@shared_task
def expire_pending_purchases() -> int:
    """Disable checkouts that never received a settlement notification."""
    expired = get_settlement_service().expire_pending()
    logger.info("Pending checkout janitor expired %s rows", expired)
    return expired
