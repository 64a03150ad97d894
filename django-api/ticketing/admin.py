from django.contrib import admin

from ticketing.models import (
    Event,
    Purchase,
    ResaleListing,
    ResaleSale,
    SettlementAlert,
    Ticket,
    Transaction,
    Transfer,
)


class TicketInline(admin.TabularInline):
    model = Ticket
    extra = 0
    readonly_fields = ["available"]


class ResaleSaleInline(admin.TabularInline):
    model = ResaleSale
    extra = 0
    readonly_fields = ["buyer", "purchase", "quantity", "created_at"]


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ["name", "location", "capacity", "visibility", "created_at"]
    search_fields = ["name", "location"]
    filter_horizontal = ["co_hosts", "invited_guests"]
    inlines = [TicketInline]


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ["name", "event", "price_cents", "quantity", "available", "is_resellable"]
    list_filter = ["event"]
    readonly_fields = ["available"]


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    list_display = ["id", "buyer", "ticket", "quantity", "status", "provenance", "purchased_at"]
    list_filter = ["status", "provenance"]
    search_fields = ["id", "buyer__username"]
    readonly_fields = ["status", "quantity", "redemption_token"]


@admin.register(ResaleListing)
class ResaleListingAdmin(admin.ModelAdmin):
    list_display = ["id", "original_purchase", "quantity", "available_quantity", "price_cents", "status"]
    list_filter = ["status"]
    readonly_fields = ["available_quantity"]
    inlines = [ResaleSaleInline]


@admin.register(Transfer)
class TransferAdmin(admin.ModelAdmin):
    list_display = ["id", "sender", "receiver", "quantity", "mode", "status", "created_at"]
    list_filter = ["status", "mode"]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "type", "amount_cents", "currency", "status", "payment_intent_id"]
    list_filter = ["type", "status"]
    search_fields = ["payment_intent_id", "processor_subscription_id"]
    readonly_fields = ["status", "payment_intent_id"]


@admin.register(SettlementAlert)
class SettlementAlertAdmin(admin.ModelAdmin):
    list_display = ["kind", "payment_intent_id", "resolved", "created_at"]
    list_filter = ["kind", "resolved"]
    search_fields = ["payment_intent_id", "detail"]
