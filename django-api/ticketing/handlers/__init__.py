from ticketing.handlers.views import (
    EventRefundView,
    EventTicketsView,
    ListingCancelView,
    ListingDetailView,
    ListingPurchaseView,
    MyListingsView,
    MyPurchasesView,
    PaymentWebhookView,
    PurchaseDetailView,
    PurchaseRedeemView,
    ResaleListingsView,
    TicketCreateView,
    TicketPurchaseView,
    TicketTypeView,
    TransferHistoryView,
    TransferView,
)

__all__ = [
    "EventRefundView",
    "EventTicketsView",
    "ListingCancelView",
    "ListingDetailView",
    "ListingPurchaseView",
    "MyListingsView",
    "MyPurchasesView",
    "PaymentWebhookView",
    "PurchaseDetailView",
    "PurchaseRedeemView",
    "ResaleListingsView",
    "TicketCreateView",
    "TicketPurchaseView",
    "TicketTypeView",
    "TransferHistoryView",
    "TransferView",
]
