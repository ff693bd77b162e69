from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from tripbook.core.errors import QuoteExpiredError, TokenInvalidError
from tripbook.models.domain import ClaimItem, QuoteClaims, QuoteKind, utc_now

logger = logging.getLogger(__name__)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    # non-canonical spellings (stray characters, unused trailing bits) decode
    # to the same bytes; accept only the exact encoding we produce
    if _b64encode(raw) != segment:
        raise ValueError("non-canonical base64 segment")
    return raw


def token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def claims_to_dict(claims: QuoteClaims) -> Dict[str, Any]:
    return {
        "kind": claims.kind.value,
        "itinerary_id": claims.itinerary_id,
        "currency": claims.currency,
        "items": [
            {
                "ref": item.reference,
                "pt": item.product_type,
                "ps": item.party_size,
                "total": str(item.total),
                "fees": str(item.fees),
            }
            for item in claims.items
        ],
        "bundle_total": str(claims.bundle_total),
        "bundle_fees": str(claims.bundle_fees),
        "iat": claims.issued_at.isoformat(),
        "exp": claims.expires_at.isoformat(),
        "nonce": claims.nonce,
    }


def canonical_json(claims: QuoteClaims) -> str:
    return json.dumps(claims_to_dict(claims), sort_keys=True, separators=(",", ":"))


def claims_from_dict(data: Dict[str, Any]) -> QuoteClaims:
    items = []
    seen = set()
    for raw in data["items"]:
        reference = raw["ref"]
        if not isinstance(reference, str) or not reference.strip():
            raise ValueError("claim item without reference")
        if reference in seen:
            raise ValueError(f"duplicate claim reference {reference}")
        seen.add(reference)
        items.append(
            ClaimItem(
                reference=reference,
                product_type=str(raw["pt"]),
                party_size=int(raw["ps"]),
                total=Decimal(raw["total"]),
                fees=Decimal(raw["fees"]),
            )
        )
    expires_at = datetime.fromisoformat(data["exp"])
    issued_at = datetime.fromisoformat(data["iat"])
    if expires_at.tzinfo is None or issued_at.tzinfo is None:
        raise ValueError("claim timestamps must carry a timezone")
    return QuoteClaims(
        kind=QuoteKind(data["kind"]),
        itinerary_id=data.get("itinerary_id"),
        currency=str(data["currency"]),
        items=tuple(items),
        bundle_total=Decimal(data["bundle_total"]),
        bundle_fees=Decimal(data["bundle_fees"]),
        issued_at=issued_at,
        expires_at=expires_at,
        nonce=str(data["nonce"]),
    )


class QuoteTokenCodec:
    """
    Signs and verifies quote tokens: ``<payload>.<mac>``, both base64url, where
    the payload is the canonical JSON of the claims and the mac is HMAC-SHA256
    over that JSON. Holds no per-token state.
    """

    def __init__(self, secret: str, clock: Optional[Callable[[], datetime]] = None):
        if not secret:
            raise ValueError("quote token secret must not be empty")
        self._key = secret.encode("utf-8")
        self._clock = clock or utc_now

    def _mac(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, hashlib.sha256).digest()

    def sign(self, claims: QuoteClaims) -> str:
        payload = canonical_json(claims).encode("utf-8")
        return f"{_b64encode(payload)}.{_b64encode(self._mac(payload))}"

    def verify(self, token: str) -> QuoteClaims:
        if not token or not isinstance(token, str):
            raise TokenInvalidError("Missing quote token", operation="verify_quote")
        parts = token.split(".")
        if len(parts) != 2:
            raise TokenInvalidError("Malformed quote token", operation="verify_quote")
        try:
            payload = _b64decode(parts[0])
            signature = _b64decode(parts[1])
        except (ValueError, binascii.Error, UnicodeEncodeError):
            raise TokenInvalidError("Malformed quote token", operation="verify_quote")

        if not hmac.compare_digest(signature, self._mac(payload)):
            logger.warning("Quote token signature mismatch token_hash=%s", token_hash(token))
            raise TokenInvalidError("Invalid quote token", operation="verify_quote")

        try:
            claims = claims_from_dict(json.loads(payload.decode("utf-8")))
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            logger.warning("Signed quote token carries unreadable claims: %s", exc)
            raise TokenInvalidError("Invalid quote token claims", operation="verify_quote")

        if claims.expires_at <= self._clock():
            raise QuoteExpiredError(
                "Quote token expired",
                operation="verify_quote",
                context={"expires_at": claims.expires_at.isoformat()},
            )
        return claims
