from typing import Optional

from fastapi import APIRouter, Depends, Header

from tripbook.api import get_orchestrator
from tripbook.models.schemas import (
    ConfirmResponse,
    ItineraryQuoteResponse,
    TripBookingQuoteSchema,
    TripConfirmRequest,
    TripQuotesResponse,
)
from tripbook.services.orchestrator import BookingOrchestrator

router = APIRouter()


@router.post(
    "/{trip_id}/items/{product_type}/{entity_id}/quote",
    response_model=TripBookingQuoteSchema,
)
def quote_trip_item(
    trip_id: str,
    product_type: str,
    entity_id: int,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> TripBookingQuoteSchema:
    quote = orchestrator.quote_single_item(trip_id, product_type, entity_id)
    return TripBookingQuoteSchema.from_domain(quote)


@router.post("/{trip_id}/itinerary/quote", response_model=ItineraryQuoteResponse)
def quote_trip_itinerary(
    trip_id: str,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> ItineraryQuoteResponse:
    return orchestrator.quote_itinerary(trip_id)


@router.post("/confirm", response_model=ConfirmResponse)
def confirm_trip_booking(
    request: TripConfirmRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> ConfirmResponse:
    return orchestrator.confirm_booking(
        quote_token=request.quote_token,
        item_refs=request.item_refs,
        payment_token=request.payment_token,
        idempotency_key=idempotency_key,
    )


@router.get("/{trip_id}/quotes", response_model=TripQuotesResponse)
def list_trip_quotes(
    trip_id: str,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> TripQuotesResponse:
    quotes = orchestrator.list_quotes(trip_id)
    return TripQuotesResponse(quotes=[TripBookingQuoteSchema.from_domain(q) for q in quotes])
