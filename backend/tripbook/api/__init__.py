from fastapi import HTTPException
from starlette.requests import Request

from tripbook.services.ledger import ConfirmationLedger
from tripbook.services.orchestrator import BookingOrchestrator
from tripbook.services.quotes import ItineraryQuoteAggregator, QuoteService


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=500, detail=f"{name} not initialized")
    return value


def get_quote_service(request: Request) -> QuoteService:
    return _state(request, "quote_service")


def get_aggregator(request: Request) -> ItineraryQuoteAggregator:
    return _state(request, "aggregator")


def get_ledger(request: Request) -> ConfirmationLedger:
    return _state(request, "ledger")


def get_orchestrator(request: Request) -> BookingOrchestrator:
    return _state(request, "orchestrator")
