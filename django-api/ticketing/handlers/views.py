"""HTTP handlers (views) - handle HTTP concerns only.

Handlers:
- Parse requests and validate input format
- Call services for business logic
- Map domain errors to HTTP responses
- Never contain business logic
- Never expose internal error details
"""

import logging

from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import serializers, status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ticketing import dependencies
from ticketing.domain import UserId
from ticketing.domain.errors import (
    AccessDeniedError,
    DomainError,
    ErrorCode,
    ExternalProcessorError,
    InsufficientInventoryError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ticketing.handlers.serializers import (
    EventTicketSummarySerializer,
    ListingCreateRequestSerializer,
    ListingPurchaseRequestSerializer,
    ListingQuerySerializer,
    ListingUpdateRequestSerializer,
    PaymentHandleSerializer,
    PurchaseRequestSerializer,
    PurchaseSerializer,
    RedeemRequestSerializer,
    RefundReportSerializer,
    RefundRequestSerializer,
    ResaleListingSerializer,
    TicketCreateRequestSerializer,
    TicketSerializer,
    TicketUpdateRequestSerializer,
    TransferRequestSerializer,
    TransferSerializer,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AccessDeniedError, status.HTTP_403_FORBIDDEN),
    (InsufficientInventoryError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ExternalProcessorError, status.HTTP_502_BAD_GATEWAY),
)

SIGNATURE_HEADER = "HTTP_STRIPE_SIGNATURE"


def error_response(error: DomainError) -> Response:
    for error_cls, http_status in ERROR_STATUS:
        if isinstance(error, error_cls):
            break
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    return Response(
        {"error": {"code": error.code.value, "message": error.message}}, status=http_status
    )


class DomainErrorMixin:
    """Turns domain and request-body errors into the API error envelope."""

    def handle_exception(self, exc):
        if isinstance(exc, DomainError):
            return error_response(exc)
        if isinstance(exc, serializers.ValidationError):
            return Response(
                {
                    "error": {
                        "code": ErrorCode.VALIDATION_ERROR.value,
                        "message": "Invalid request",
                        "fields": exc.detail,
                    }
                },
                status=status.HTTP_400_BAD_REQUEST,
            )
        return super().handle_exception(exc)


def _user(request: Request) -> UserId:
    return UserId(request.user.pk)


def _validated(serializer_cls, data) -> dict:
    serializer = serializer_cls(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class EventTicketsView(DomainErrorMixin, APIView):
    """Handler for GET /api/tickets/{event_id}"""

    def get(self, request: Request, event_id: str) -> Response:
        summary = dependencies.get_catalog_service().list_event_tickets(event_id, _user(request))
        return Response(EventTicketSummarySerializer(summary).data)


class TicketCreateView(DomainErrorMixin, APIView):
    """Handler for POST /api/events/{event_id}/tickets"""

    def post(self, request: Request, event_id: str) -> Response:
        body = _validated(TicketCreateRequestSerializer, request.data)
        ticket = dependencies.get_catalog_service().create_ticket(
            _user(request),
            event_id,
            body["name"],
            body["quantity"],
            body["price"],
            body["resellable"],
        )
        return Response(TicketSerializer(ticket).data, status=status.HTTP_201_CREATED)


class TicketTypeView(DomainErrorMixin, APIView):
    """Handler for PATCH/DELETE /api/ticket-types/{ticket_id}"""

    def patch(self, request: Request, ticket_id: str) -> Response:
        body = _validated(TicketUpdateRequestSerializer, request.data)
        ticket = dependencies.get_catalog_service().update_ticket(
            _user(request), ticket_id, **body
        )
        return Response(TicketSerializer(ticket).data)

    def delete(self, request: Request, ticket_id: str) -> Response:
        dependencies.get_catalog_service().delete_ticket(_user(request), ticket_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TicketPurchaseView(DomainErrorMixin, APIView):
    """Handler for POST /api/tickets/{ticket_id}/purchase"""

    def post(self, request: Request, ticket_id: str) -> Response:
        body = _validated(PurchaseRequestSerializer, request.data)
        handle = dependencies.get_purchase_service().create_pending_purchase(
            _user(request), ticket_id, body["quantity"]
        )
        return Response(PaymentHandleSerializer(handle).data, status=status.HTTP_201_CREATED)


class MyPurchasesView(DomainErrorMixin, APIView):
    """Handler for GET /api/purchases/mine"""

    def get(self, request: Request) -> Response:
        purchases = dependencies.get_purchase_service().list_my_purchases(_user(request))
        return Response(PurchaseSerializer(purchases, many=True).data)


class PurchaseDetailView(DomainErrorMixin, APIView):
    """Handler for GET /api/purchases/{purchase_id}"""

    def get(self, request: Request, purchase_id: str) -> Response:
        purchase = dependencies.get_purchase_service().get_purchase(_user(request), purchase_id)
        return Response(PurchaseSerializer(purchase).data)


class PurchaseRedeemView(DomainErrorMixin, APIView):
    """Handler for POST /api/purchases/{purchase_id}/redeem"""

    def post(self, request: Request, purchase_id: str) -> Response:
        body = _validated(RedeemRequestSerializer, request.data)
        purchase = dependencies.get_purchase_service().redeem(
            _user(request), purchase_id, body.get("token")
        )
        return Response(PurchaseSerializer(purchase).data)


class ResaleListingsView(DomainErrorMixin, APIView):
    """Handler for GET/POST /api/resell"""

    def get(self, request: Request) -> Response:
        query = _validated(ListingQuerySerializer, request.query_params)
        listings = dependencies.get_resale_service().list_available(
            _user(request),
            event_id=query.get("event_id"),
            min_price=query.get("min_price"),
            max_price=query.get("max_price"),
            sort=query["sort"],
        )
        return Response(ResaleListingSerializer(listings, many=True).data)

    def post(self, request: Request) -> Response:
        body = _validated(ListingCreateRequestSerializer, request.data)
        listing = dependencies.get_resale_service().create_listing(
            _user(request), body["purchase_id"], body["quantity"], body["price"]
        )
        return Response(ResaleListingSerializer(listing).data, status=status.HTTP_201_CREATED)


class MyListingsView(DomainErrorMixin, APIView):
    """Handler for GET /api/resell/mine"""

    def get(self, request: Request) -> Response:
        listings = dependencies.get_resale_service().list_mine(
            _user(request), request.query_params.get("status")
        )
        return Response(ResaleListingSerializer(listings, many=True).data)


class ListingDetailView(DomainErrorMixin, APIView):
    """Handler for GET/PATCH /api/resell/{listing_id}"""

    def get(self, request: Request, listing_id: str) -> Response:
        listing = dependencies.get_resale_service().get_listing(listing_id)
        return Response(ResaleListingSerializer(listing).data)

    def patch(self, request: Request, listing_id: str) -> Response:
        body = _validated(ListingUpdateRequestSerializer, request.data)
        listing = dependencies.get_resale_service().update_listing(
            _user(request), listing_id, price=body.get("price"), quantity=body.get("quantity")
        )
        return Response(ResaleListingSerializer(listing).data)


class ListingCancelView(DomainErrorMixin, APIView):
    """Handler for POST /api/resell/{listing_id}/cancel"""

    def post(self, request: Request, listing_id: str) -> Response:
        listing = dependencies.get_resale_service().cancel_listing(_user(request), listing_id)
        return Response(ResaleListingSerializer(listing).data)


class ListingPurchaseView(DomainErrorMixin, APIView):
    """Handler for POST /api/resell/{listing_id}/purchase"""

    def post(self, request: Request, listing_id: str) -> Response:
        body = _validated(ListingPurchaseRequestSerializer, request.data)
        handle = dependencies.get_resale_service().purchase(
            _user(request), listing_id, body["quantity"], body["price"]
        )
        return Response(PaymentHandleSerializer(handle).data, status=status.HTTP_201_CREATED)


class TransferView(DomainErrorMixin, APIView):
    """Handler for POST /api/transfer"""

    def post(self, request: Request) -> Response:
        body = _validated(TransferRequestSerializer, request.data)
        transfer = dependencies.get_transfer_service().transfer(
            _user(request),
            body["purchase_id"],
            body["receiver_id"],
            body["mode"],
            body.get("quantity"),
        )
        return Response(TransferSerializer(transfer).data, status=status.HTTP_201_CREATED)


class TransferHistoryView(DomainErrorMixin, APIView):
    """Handler for GET /api/transfers?type=sent|received|all"""

    def get(self, request: Request) -> Response:
        transfers = dependencies.get_transfer_service().history(
            _user(request), request.query_params.get("type", "all")
        )
        return Response(TransferSerializer(transfers, many=True).data)


class EventRefundView(DomainErrorMixin, APIView):
    """Handler for POST /api/events/{event_id}/refund"""

    def post(self, request: Request, event_id: str) -> Response:
        body = _validated(RefundRequestSerializer, request.data)
        report = dependencies.get_refund_service().refund_event(
            event_id, body["reason"], requested_by=_user(request)
        )
        return Response(RefundReportSerializer(report).data)


@method_decorator(csrf_exempt, name="dispatch")
class PaymentWebhookView(DomainErrorMixin, APIView):
    """Handler for POST /api/payments/webhook

    No authentication: the envelope signature is the credential.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request: Request) -> Response:
        event = dependencies.get_processor().parse_event(
            request.body, request.META.get(SIGNATURE_HEADER, "")
        )
        result = dependencies.get_settlement_service().handle(event)
        logger.debug("Processor event %s (%s): %s", event.id, event.raw_type, result.value)
        return Response({"received": True, "result": result.value})
