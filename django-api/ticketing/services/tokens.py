"""Redemption tokens (the QR payload scanned at the door).

A token is a Django-signed, compressed claim set. The signature is an HMAC
over the claims keyed by SECRET_KEY and TICKETING_REDEMPTION_SALT, and every
token carries a random nonce, so it cannot be derived from the public
purchase fields.
"""

import secrets
from typing import Any, Callable

from django.core import signing
from django.utils import timezone

from ticketing.domain import EventId, Purchase, PurchaseId, TicketId, UserId
from ticketing.domain.errors import InvalidRedemptionTokenError


class RedemptionTokenIssuer:
    """Issues and verifies redemption tokens."""

    def __init__(self, salt: str, clock: Callable = timezone.now) -> None:
        self._salt = salt
        self._clock = clock

    def issue(
        self, purchase_id: PurchaseId, buyer_id: UserId, ticket_id: TicketId, event_id: EventId
    ) -> str:
        claims = {
            "pid": str(purchase_id),
            "uid": buyer_id.value,
            "tid": str(ticket_id),
            "eid": str(event_id),
            "iat": self._clock().isoformat(),
            "nonce": secrets.token_urlsafe(16),
        }
        return signing.dumps(claims, salt=self._salt, compress=True)

    def verify(self, token: str) -> dict[str, Any]:
        """Return the claims of a token.

        Raises:
            InvalidRedemptionTokenError: If the token was tampered with or not issued here.
        """
        try:
            claims = signing.loads(token, salt=self._salt)
        except signing.BadSignature as exc:
            raise InvalidRedemptionTokenError() from exc
        if not isinstance(claims, dict) or "pid" not in claims:
            raise InvalidRedemptionTokenError()
        return claims

    def verify_for(self, token: str, purchase: Purchase) -> None:
        """Check that the token is authentic and belongs to this purchase."""
        claims = self.verify(token)
        if (
            claims.get("pid") != str(purchase.id)
            or claims.get("uid") != purchase.buyer_id.value
            or claims.get("tid") != str(purchase.ticket_id)
            or claims.get("eid") != str(purchase.event_id)
            or token != purchase.redemption_token
        ):
            raise InvalidRedemptionTokenError()
