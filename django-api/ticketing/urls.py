from django.urls import path

from ticketing.handlers import (
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

urlpatterns = [
    path("tickets/<str:event_id>", EventTicketsView.as_view(), name="event-tickets"),
    path("tickets/<str:ticket_id>/purchase", TicketPurchaseView.as_view(), name="ticket-purchase"),
    path("events/<str:event_id>/tickets", TicketCreateView.as_view(), name="ticket-create"),
    path("events/<str:event_id>/refund", EventRefundView.as_view(), name="event-refund"),
    path("ticket-types/<str:ticket_id>", TicketTypeView.as_view(), name="ticket-type"),
    path("purchases/mine", MyPurchasesView.as_view(), name="purchase-mine"),
    path("purchases/<str:purchase_id>", PurchaseDetailView.as_view(), name="purchase-detail"),
    path(
        "purchases/<str:purchase_id>/redeem",
        PurchaseRedeemView.as_view(),
        name="purchase-redeem",
    ),
    path("resell", ResaleListingsView.as_view(), name="resell-list"),
    path("resell/mine", MyListingsView.as_view(), name="resell-mine"),
    path("resell/<str:listing_id>", ListingDetailView.as_view(), name="resell-detail"),
    path("resell/<str:listing_id>/cancel", ListingCancelView.as_view(), name="resell-cancel"),
    path(
        "resell/<str:listing_id>/purchase",
        ListingPurchaseView.as_view(),
        name="resell-purchase",
    ),
    path("transfer", TransferView.as_view(), name="transfer"),
    path("transfers", TransferHistoryView.as_view(), name="transfer-history"),
    path("payments/webhook", PaymentWebhookView.as_view(), name="payment-webhook"),
]
