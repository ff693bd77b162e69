from typing import Optional

from fastapi import APIRouter, Depends, Header

from tripbook.api import get_aggregator, get_ledger, get_quote_service
from tripbook.models.schemas import (
    ConfirmRequest,
    ConfirmResponse,
    ItineraryQuoteRequest,
    ItineraryQuoteResponse,
    QuoteRequest,
    QuoteResponse,
)
from tripbook.services.ledger import ConfirmationLedger
from tripbook.services.quotes import ItineraryQuoteAggregator, QuoteService

router = APIRouter()


@router.get("/ping")
def ping() -> dict:
    return {"status": "ok", "service": "booking"}


@router.post("/quote", response_model=QuoteResponse)
def quote(
    request: QuoteRequest,
    service: QuoteService = Depends(get_quote_service),
) -> QuoteResponse:
    return QuoteResponse.from_domain(service.quote(request))


@router.post("/itinerary/quote", response_model=ItineraryQuoteResponse)
def itinerary_quote(
    request: ItineraryQuoteRequest,
    aggregator: ItineraryQuoteAggregator = Depends(get_aggregator),
) -> ItineraryQuoteResponse:
    return ItineraryQuoteResponse.from_domain(aggregator.quote(request))


@router.post("/confirm", response_model=ConfirmResponse)
def confirm(
    request: ConfirmRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ledger: ConfirmationLedger = Depends(get_ledger),
) -> ConfirmResponse:
    result = ledger.confirm(
        quote_token=request.quote_token,
        payment_token=request.payment_token,
        item_refs=request.item_refs,
        idempotency_key=idempotency_key,
    )
    return ConfirmResponse.from_domain(result)
