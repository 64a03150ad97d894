"""Serializers for request bodies and for domain models in API responses."""

from rest_framework import serializers


class TicketSerializer(serializers.Serializer):
    """Serializer for Ticket domain model."""

    id = serializers.UUIDField(source="id.value")
    event_id = serializers.UUIDField(source="event_id.value")
    name = serializers.CharField()
    quantity = serializers.IntegerField(source="quantity.value")
    available = serializers.IntegerField()
    price = serializers.IntegerField(source="price.amount")
    currency = serializers.CharField(source="price.currency")
    resellable = serializers.BooleanField()


class TicketSalesSerializer(serializers.Serializer):
    ticket = TicketSerializer()
    units_sold = serializers.IntegerField()
    sales_amount = serializers.IntegerField()
    is_sold_out = serializers.BooleanField()


class EventTicketSummarySerializer(serializers.Serializer):
    event_id = serializers.UUIDField(source="event.id.value")
    event_name = serializers.CharField(source="event.name")
    capacity = serializers.IntegerField(source="event.capacity.value")
    total_quantity = serializers.IntegerField()
    total_sold = serializers.IntegerField()
    total_sales_amount = serializers.IntegerField()
    tickets = TicketSalesSerializer(many=True)


class PurchaseSerializer(serializers.Serializer):
    """Serializer for Purchase domain model."""

    id = serializers.UUIDField(source="id.value")
    ticket_id = serializers.UUIDField(source="ticket_id.value")
    event_id = serializers.UUIDField(source="event_id.value")
    buyer_id = serializers.IntegerField(source="buyer_id.value")
    quantity = serializers.IntegerField()
    total_price = serializers.IntegerField(source="total_price.amount")
    currency = serializers.CharField(source="total_price.currency")
    provenance = serializers.CharField(source="provenance.value")
    status = serializers.CharField(source="status.value")
    redemption_token = serializers.CharField()
    purchased_at = serializers.DateTimeField()
    metadata = serializers.DictField()


class PaymentHandleSerializer(serializers.Serializer):
    transaction_id = serializers.UUIDField(source="transaction_id.value")
    purchase_id = serializers.SerializerMethodField()
    payment_intent_id = serializers.CharField()
    client_secret = serializers.CharField()
    amount = serializers.IntegerField(source="amount.amount")
    currency = serializers.CharField(source="amount.currency")

    def get_purchase_id(self, obj) -> str | None:
        return str(obj.purchase_id) if obj.purchase_id else None


class ResaleSaleSerializer(serializers.Serializer):
    buyer_id = serializers.IntegerField(source="buyer_id.value")
    purchase_id = serializers.UUIDField(source="purchase_id.value")
    quantity = serializers.IntegerField()


class ResaleListingSerializer(serializers.Serializer):
    """Serializer for ResaleListing domain model."""

    id = serializers.UUIDField(source="id.value")
    original_purchase_id = serializers.UUIDField(source="original_purchase_id.value")
    seller_id = serializers.IntegerField(source="seller_id.value")
    event_id = serializers.UUIDField(source="event_id.value")
    ticket_id = serializers.UUIDField(source="ticket_id.value")
    quantity = serializers.IntegerField()
    available_quantity = serializers.IntegerField()
    price = serializers.IntegerField(source="price.amount")
    currency = serializers.CharField(source="price.currency")
    status = serializers.CharField(source="status.value")
    listed_at = serializers.DateTimeField()
    sold_at = serializers.DateTimeField(allow_null=True)
    cancelled_at = serializers.DateTimeField(allow_null=True)
    sales = ResaleSaleSerializer(many=True)


class TransferSerializer(serializers.Serializer):
    """Serializer for Transfer domain model."""

    id = serializers.UUIDField(source="id.value")
    original_purchase_id = serializers.UUIDField(source="original_purchase_id.value")
    new_purchase_id = serializers.SerializerMethodField()
    sender_id = serializers.IntegerField(source="sender_id.value")
    receiver_id = serializers.IntegerField(source="receiver_id.value")
    event_id = serializers.UUIDField(source="event_id.value")
    ticket_id = serializers.UUIDField(source="ticket_id.value")
    mode = serializers.CharField(source="mode.value")
    quantity = serializers.IntegerField()
    status = serializers.CharField(source="status.value")
    created_at = serializers.DateTimeField()
    completed_at = serializers.DateTimeField(allow_null=True)

    def get_new_purchase_id(self, obj) -> str | None:
        return str(obj.new_purchase_id) if obj.new_purchase_id else None


class RefundFailureSerializer(serializers.Serializer):
    purchase_id = serializers.UUIDField(source="purchase_id.value")
    code = serializers.CharField()
    message = serializers.CharField()


class RefundReportSerializer(serializers.Serializer):
    event_id = serializers.UUIDField(source="event_id.value")
    requested = serializers.SerializerMethodField()
    skipped = serializers.SerializerMethodField()
    failed = RefundFailureSerializer(many=True)

    def get_requested(self, obj) -> list[str]:
        return [str(pid) for pid in obj.requested]

    def get_skipped(self, obj) -> list[str]:
        return [str(pid) for pid in obj.skipped]


# Request bodies


class TicketCreateRequestSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.IntegerField(min_value=0)
    resellable = serializers.BooleanField(default=False)


class TicketUpdateRequestSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100, required=False)
    quantity = serializers.IntegerField(min_value=1, required=False)
    price = serializers.IntegerField(min_value=0, required=False)
    resellable = serializers.BooleanField(required=False)


class PurchaseRequestSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)


class RedeemRequestSerializer(serializers.Serializer):
    token = serializers.CharField(required=False)


class ListingCreateRequestSerializer(serializers.Serializer):
    purchase_id = serializers.CharField()
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.IntegerField(min_value=1)


class ListingUpdateRequestSerializer(serializers.Serializer):
    price = serializers.IntegerField(min_value=1, required=False)
    quantity = serializers.IntegerField(min_value=1, required=False)


class ListingPurchaseRequestSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.IntegerField(min_value=1)


class ListingQuerySerializer(serializers.Serializer):
    event_id = serializers.CharField(required=False)
    min_price = serializers.IntegerField(min_value=0, required=False)
    max_price = serializers.IntegerField(min_value=0, required=False)
    sort = serializers.CharField(required=False, default="date_desc")


class TransferRequestSerializer(serializers.Serializer):
    purchase_id = serializers.CharField()
    receiver_id = serializers.IntegerField()
    mode = serializers.ChoiceField(choices=["all", "quantity"], default="all")
    quantity = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        if attrs["mode"] == "quantity" and "quantity" not in attrs:
            raise serializers.ValidationError({"quantity": "Required when mode is 'quantity'."})
        return attrs


class RefundRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)
