from __future__ import annotations

import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from tripbook.core.config import BookingConfig
from tripbook.core.errors import ValidationError
from tripbook.models.domain import (
    ClaimItem,
    ItineraryQuote,
    PricedItineraryItem,
    PricingResult,
    QuoteClaims,
    QuoteKind,
    SingleQuote,
    money,
    utc_now,
)
from tripbook.models.schemas import ItineraryQuoteRequest, QuoteRequest
from tripbook.services.pricing import PricingEngine, normalize_product_type
from tripbook.services.references import ReferenceGenerator
from tripbook.services.tokens import QuoteTokenCodec

logger = logging.getLogger(__name__)


class _QuoteSigner:
    def __init__(
        self,
        pricing: PricingEngine,
        codec: QuoteTokenCodec,
        references: ReferenceGenerator,
        config: BookingConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.pricing = pricing
        self.codec = codec
        self.references = references
        self.config = config
        self.clock = clock or utc_now

    def _claims(
        self,
        kind: QuoteKind,
        currency: str,
        items: List[ClaimItem],
        itinerary_id: Optional[str] = None,
    ) -> QuoteClaims:
        issued_at = self.clock()
        return QuoteClaims(
            kind=kind,
            itinerary_id=itinerary_id,
            currency=currency,
            items=tuple(items),
            bundle_total=money(sum((i.total for i in items), Decimal("0"))),
            bundle_fees=money(sum((i.fees for i in items), Decimal("0"))),
            issued_at=issued_at,
            expires_at=issued_at + self.config.quote_ttl,
            nonce=secrets.token_urlsafe(12),
        )


class QuoteService(_QuoteSigner):
    def quote(self, request: QuoteRequest) -> SingleQuote:
        items = self.pricing.price(
            request.product_type, request.params, request.party_size, request.currency
        )
        result = PricingResult(items=tuple(items))
        reference = (request.item_reference or "").strip() or items[0].reference
        claims = self._claims(
            QuoteKind.single,
            items[0].currency,
            [
                ClaimItem(
                    reference=reference,
                    product_type=normalize_product_type(request.product_type).value,
                    party_size=request.party_size,
                    total=result.total,
                    fees=result.fees,
                )
            ],
        )
        token = self.codec.sign(claims)
        logger.debug(
            "Quoted %s reference=%s total=%s %s",
            request.product_type,
            reference,
            result.total,
            claims.currency,
        )
        return SingleQuote(
            voucher_code=self.references.voucher_code(),
            invoice_id=self.references.invoice_id(),
            quote_token=token,
            expires_at=claims.expires_at,
            items=result.items,
        )


class ItineraryQuoteAggregator(_QuoteSigner):
    """
    Prices every item of an itinerary and signs one token over the bundle.
    Caller references stay the canonical item ids so a later confirm can
    select a subset of them.
    """

    def quote(self, request: ItineraryQuoteRequest) -> ItineraryQuote:
        if not request.itinerary_id or not request.itinerary_id.strip():
            raise ValidationError("itinerary_id must not be blank", operation="itinerary_quote")
        if not request.items:
            raise ValidationError("Itinerary must contain at least one item", operation="itinerary_quote")
        currency = self.pricing.normalize_currency(request.currency)

        priced: List[PricedItineraryItem] = []
        seen = set()
        for item in request.items:
            reference = (item.reference or "").strip()
            if not reference:
                raise ValidationError("Itinerary item reference must not be blank", operation="itinerary_quote")
            if reference in seen:
                raise ValidationError(
                    f"Duplicate itinerary item reference: {reference}",
                    operation="itinerary_quote",
                    context={"itinerary_id": request.itinerary_id},
                )
            seen.add(reference)
            result = PricingResult(
                items=tuple(self.pricing.price(item.product_type, item.params, item.party_size, currency))
            )
            priced.append(
                PricedItineraryItem(
                    reference=reference,
                    product_type=normalize_product_type(item.product_type).value,
                    party_size=item.party_size,
                    total=result.total,
                    fees=result.fees,
                    quote_items=result.items,
                )
            )

        claims = self._claims(
            QuoteKind.itinerary,
            currency,
            [
                ClaimItem(
                    reference=p.reference,
                    product_type=p.product_type,
                    party_size=p.party_size,
                    total=p.total,
                    fees=p.fees,
                )
                for p in priced
            ],
            itinerary_id=request.itinerary_id,
        )
        token = self.codec.sign(claims)
        logger.info(
            "Prepared itinerary quote itinerary_id=%s items=%d bundle_total=%s %s",
            request.itinerary_id,
            len(priced),
            claims.bundle_total,
            currency,
        )
        return ItineraryQuote(
            quote_token=token,
            expires_at=claims.expires_at,
            voucher_code=self.references.voucher_code(),
            invoice_id=self.references.invoice_id(),
            currency=currency,
            items=tuple(priced),
            bundle_total=claims.bundle_total,
            bundle_fees=claims.bundle_fees,
        )
