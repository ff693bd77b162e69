from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from tripbook.clients.booking_client import BookingClient
from tripbook.core.errors import BookingApiError, BookingError, InternalError, ValidationError
from tripbook.models.domain import (
    ItemStatus,
    MirrorStatus,
    ProductType,
    Trip,
    TripBookingQuote,
    TripItem,
    money,
    utc_now,
)
from tripbook.models.schemas import (
    ConfirmRequest,
    ConfirmResponse,
    ItineraryQuoteItemRequest,
    ItineraryQuoteRequest,
    ItineraryQuoteResponse,
    QuoteRequest,
)
from tripbook.services.pricing import normalize_product_type
from tripbook.storage.repository import InMemoryRepository

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = {
    ProductType.transportation: "transport",
    ProductType.hotel: "hotel",
    ProductType.attraction: "attraction",
}


def build_reference(product_type: ProductType, entity_id: int) -> str:
    return f"{REFERENCE_PREFIX[product_type]}_{entity_id}"


class BookingOrchestrator:
    """
    Trip-side half of the protocol: quotes trip items against the booking
    service, keeps one local mirror row per item and folds confirm results
    back into it.
    """

    def __init__(
        self,
        repository: InMemoryRepository,
        client: BookingClient,
        default_currency: str = "AUD",
        default_payment_token: str = "pm_mock_visa",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.client = client
        self.default_currency = default_currency
        self.default_payment_token = default_payment_token
        self.clock = clock or utc_now

    def quote_single_item(self, trip_id: str, product_type: str, entity_id: int) -> TripBookingQuote:
        trip = self._trip(trip_id)
        kind = normalize_product_type(product_type)
        item = self.repository.get_item(kind, entity_id)
        if item is None or item.trip_id != trip_id:
            raise ValidationError(
                f"{kind.value} {entity_id} not found for trip {trip_id}",
                operation="quote_single_item",
            )
        reference = build_reference(kind, entity_id)
        currency = self._currency(item, trip)
        logger.debug("Preparing single quote trip_id=%s product_type=%s entity_id=%s", trip_id, kind.value, entity_id)

        request = QuoteRequest(
            product_type=kind.value,
            currency=currency,
            party_size=self._party_size(trip),
            params=self._params(item, trip),
            item_reference=reference,
            trip_id=trip_id,
            entity_id=entity_id,
        )
        try:
            response = self.client.quote(request)
        except BookingError as exc:
            self._persist_failure(trip_id, item, exc)
            raise

        total = money(sum((i.subtotal + i.fee for i in response.items), Decimal("0")))
        saved = self._upsert(
            trip_id,
            item,
            quote_token=response.quote_token,
            total_amount=total,
            currency=response.items[0].currency if response.items else currency,
            raw_response=response.model_dump_json(),
        )
        logger.info("Stored booking quote trip_id=%s reference=%s", trip_id, saved.item_reference)
        return saved

    def quote_itinerary(self, trip_id: str) -> ItineraryQuoteResponse:
        trip = self._trip(trip_id)
        pending = [
            item
            for item in self.repository.list_items_for_trip(trip_id)
            if item.reservation_required and item.status != MirrorStatus.confirmed.value
        ]
        if not pending:
            raise ValidationError(
                f"No pending reservation-required items for trip {trip_id}",
                operation="quote_itinerary",
            )
        by_reference: Dict[str, TripItem] = {
            build_reference(item.product_type, item.entity_id): item for item in pending
        }
        request = ItineraryQuoteRequest(
            itinerary_id=f"iti_{trip_id}",
            currency=trip.currency or self.default_currency,
            trip_id=trip_id,
            items=[
                ItineraryQuoteItemRequest(
                    reference=reference,
                    product_type=item.product_type.value,
                    party_size=self._party_size(trip),
                    params=self._params(item, trip),
                    entity_id=item.entity_id,
                )
                for reference, item in by_reference.items()
            ],
        )
        logger.info(
            "Preparing itinerary quote trip_id=%s itinerary_id=%s items=%d",
            trip_id,
            request.itinerary_id,
            len(request.items),
        )
        try:
            response = self.client.itinerary_quote(request)
        except BookingError as exc:
            for item in pending:
                self._persist_failure(trip_id, item, exc)
            raise

        raw = response.model_dump_json()
        for quoted in response.items:
            item = by_reference.get(quoted.reference)
            if item is None:
                raise InternalError(
                    f"Unexpected itinerary item reference: {quoted.reference}",
                    operation="quote_itinerary",
                    context={"trip_id": trip_id},
                )
            currency = quoted.quote_items[0].currency if quoted.quote_items else response.currency
            self._upsert(
                trip_id,
                item,
                quote_token=response.quote_token,
                total_amount=money(quoted.total + quoted.fees),
                currency=currency,
                raw_response=raw,
            )
        logger.info("Stored itinerary quote trip_id=%s bundle_total=%s", trip_id, response.bundle_total)
        return response

    def confirm_booking(
        self,
        quote_token: str,
        item_refs: Optional[Sequence[str]] = None,
        payment_token: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> ConfirmResponse:
        key = idempotency_key or str(uuid.uuid4())
        refs: List[str] = list(item_refs or [])
        if refs:
            logger.info("Confirming quote with selected items %s idempotency_key=%s", refs, key)
        else:
            logger.debug("Confirming full quote idempotency_key=%s", key)

        response = self.client.confirm(
            ConfirmRequest(
                quote_token=quote_token,
                payment_token=payment_token or self.default_payment_token,
                item_refs=refs,
            ),
            key,
        )

        for outcome in response.confirmed_items:
            if outcome.status != ItemStatus.confirmed.value:
                continue
            for mirror in self.repository.find_quotes_by_token(quote_token, outcome.reference):
                mirror.status = MirrorStatus.confirmed
                mirror.voucher_code = response.voucher_code
                mirror.invoice_id = response.invoice_id
                mirror.updated_at = self.clock()
                self.repository.save_quote(mirror)
                self._mark_item_confirmed(mirror)
        logger.info(
            "Booking confirm status=%s voucher=%s invoice=%s",
            response.status,
            response.voucher_code,
            response.invoice_id,
        )
        return response

    def list_quotes(self, trip_id: str) -> List[TripBookingQuote]:
        self._trip(trip_id)
        return self.repository.list_quotes_for_trip(trip_id)

    def _trip(self, trip_id: str) -> Trip:
        trip = self.repository.get_trip(trip_id)
        if trip is None:
            raise ValidationError(f"Trip not found: {trip_id}", operation="trip_lookup")
        return trip

    @staticmethod
    def _party_size(trip: Trip) -> int:
        return trip.people if trip.people and trip.people > 0 else 1

    def _currency(self, item: TripItem, trip: Trip) -> str:
        return item.currency or trip.currency or self.default_currency

    @staticmethod
    def _params(item: TripItem, trip: Trip) -> Dict[str, Any]:
        params = dict(item.params)
        params.setdefault("title", item.title)
        if item.item_date:
            params.setdefault("date", item.item_date.isoformat())
        if trip.destination and item.product_type != ProductType.transportation:
            params.setdefault("city", trip.destination)
        return params

    def _upsert(
        self,
        trip_id: str,
        item: TripItem,
        quote_token: Optional[str],
        total_amount: Optional[Decimal],
        currency: Optional[str],
        raw_response: Optional[str],
        status: MirrorStatus = MirrorStatus.quoted,
    ) -> TripBookingQuote:
        now = self.clock()
        quote = self.repository.find_quote(trip_id, item.entity_id, item.product_type.value)
        if quote is None:
            quote = TripBookingQuote(
                id=str(uuid.uuid4()),
                trip_id=trip_id,
                entity_id=item.entity_id,
                product_type=item.product_type.value,
                item_reference=build_reference(item.product_type, item.entity_id),
                status=status,
                created_at=now,
                updated_at=now,
            )
        quote.quote_token = quote_token
        quote.total_amount = total_amount
        quote.currency = currency
        quote.raw_response = raw_response
        quote.status = status
        quote.voucher_code = None
        quote.invoice_id = None
        quote.updated_at = now
        return self.repository.save_quote(quote)

    def _persist_failure(self, trip_id: str, item: TripItem, exc: BookingError) -> None:
        details = exc.response_body if isinstance(exc, BookingApiError) and exc.response_body else str(exc)
        quote = self._upsert(
            trip_id,
            item,
            quote_token=None,
            total_amount=None,
            currency=None,
            raw_response=details,
            status=MirrorStatus.failed,
        )
        logger.warning(
            "Stored failed booking quote trip_id=%s reference=%s reason=%s",
            trip_id,
            quote.item_reference,
            details,
        )

    def _mark_item_confirmed(self, quote: TripBookingQuote) -> None:
        item = self.repository.get_item(ProductType(quote.product_type), quote.entity_id)
        if item is not None:
            item.status = MirrorStatus.confirmed.value
            self.repository.save_item(item)
