"""Wires services to the Django stores and the configured payment processor."""

from datetime import timedelta

from django.conf import settings
from django.utils.module_loading import import_string

from ticketing.processors.interfaces import PaymentProcessor
from ticketing.services.catalog import CatalogService
from ticketing.services.inventory import InventoryLedger
from ticketing.services.purchases import PurchaseService
from ticketing.services.refunds import RefundService
from ticketing.services.resale import ResaleService
from ticketing.services.settlement import SettlementService
from ticketing.services.tokens import RedemptionTokenIssuer
from ticketing.services.transfers import TransferService
from ticketing.stores.django_store import (
    DjangoCatalogStore,
    DjangoInventoryStore,
    DjangoOwnershipStore,
    DjangoPurchaseStore,
    DjangoResaleStore,
    DjangoSettlementStore,
    DjangoTransactionStore,
    DjangoTransferStore,
    DjangoUnitOfWork,
)


def get_processor() -> PaymentProcessor:
    return import_string(settings.TICKETING_PAYMENT_PROCESSOR)()


def get_token_issuer() -> RedemptionTokenIssuer:
    return RedemptionTokenIssuer(salt=settings.TICKETING_REDEMPTION_SALT)


def get_inventory_ledger() -> InventoryLedger:
    return InventoryLedger(DjangoInventoryStore(), DjangoCatalogStore())


def get_catalog_service() -> CatalogService:
    return CatalogService(DjangoCatalogStore(), DjangoUnitOfWork(), settings.TICKETING_CURRENCY)


def get_purchase_service() -> PurchaseService:
    return PurchaseService(
        catalog=DjangoCatalogStore(),
        purchases=DjangoPurchaseStore(),
        transactions=DjangoTransactionStore(),
        processor=get_processor(),
        uow=DjangoUnitOfWork(),
        tokens=get_token_issuer(),
        currency=settings.TICKETING_CURRENCY,
    )


def get_settlement_service() -> SettlementService:
    return SettlementService(
        transactions=DjangoTransactionStore(),
        settlement=DjangoSettlementStore(),
        ownership=DjangoOwnershipStore(),
        resale=DjangoResaleStore(),
        inventory=get_inventory_ledger(),
        tokens=get_token_issuer(),
        processor=get_processor(),
        uow=DjangoUnitOfWork(),
        currency=settings.TICKETING_CURRENCY,
        pending_expiry=timedelta(minutes=settings.TICKETING_PENDING_EXPIRY_MINUTES),
    )


def get_resale_service() -> ResaleService:
    return ResaleService(
        catalog=DjangoCatalogStore(),
        purchases=DjangoPurchaseStore(),
        resale=DjangoResaleStore(),
        transactions=DjangoTransactionStore(),
        processor=get_processor(),
        currency=settings.TICKETING_CURRENCY,
    )


def get_transfer_service() -> TransferService:
    return TransferService(
        catalog=DjangoCatalogStore(),
        ownership=DjangoOwnershipStore(),
        transfers=DjangoTransferStore(),
        resale=DjangoResaleStore(),
        uow=DjangoUnitOfWork(),
        tokens=get_token_issuer(),
    )


def get_refund_service() -> RefundService:
    return RefundService(
        catalog=DjangoCatalogStore(),
        purchases=DjangoPurchaseStore(),
        transactions=DjangoTransactionStore(),
        processor=get_processor(),
        uow=DjangoUnitOfWork(),
    )
