from __future__ import annotations

import logging
from typing import Optional, Protocol, Type, TypeVar

import requests
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from tripbook.core.errors import BookingApiError, ErrorKind
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

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"

T = TypeVar("T", bound=BaseModel)


class BookingClient(Protocol):
    """Booking service abstraction so the trip side can run in-process or over HTTP."""

    def quote(self, request: QuoteRequest) -> QuoteResponse:
        ...

    def itinerary_quote(self, request: ItineraryQuoteRequest) -> ItineraryQuoteResponse:
        ...

    def confirm(self, request: ConfirmRequest, idempotency_key: str) -> ConfirmResponse:
        ...


class LocalBookingClient:
    def __init__(
        self,
        quote_service: QuoteService,
        aggregator: ItineraryQuoteAggregator,
        ledger: ConfirmationLedger,
    ):
        self.quote_service = quote_service
        self.aggregator = aggregator
        self.ledger = ledger

    def quote(self, request: QuoteRequest) -> QuoteResponse:
        return QuoteResponse.from_domain(self.quote_service.quote(request))

    def itinerary_quote(self, request: ItineraryQuoteRequest) -> ItineraryQuoteResponse:
        return ItineraryQuoteResponse.from_domain(self.aggregator.quote(request))

    def confirm(self, request: ConfirmRequest, idempotency_key: str) -> ConfirmResponse:
        result = self.ledger.confirm(
            quote_token=request.quote_token,
            payment_token=request.payment_token,
            item_refs=request.item_refs,
            idempotency_key=idempotency_key,
        )
        return ConfirmResponse.from_domain(result)


class HttpBookingClient:
    def __init__(
        self,
        base_url: str,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def quote(self, request: QuoteRequest) -> QuoteResponse:
        logger.debug("Sending booking quote request for product_type=%s", request.product_type)
        return self._post("/quote", request, QuoteResponse)

    def itinerary_quote(self, request: ItineraryQuoteRequest) -> ItineraryQuoteResponse:
        logger.debug("Sending itinerary quote request itinerary_id=%s", request.itinerary_id)
        return self._post("/itinerary/quote", request, ItineraryQuoteResponse)

    def confirm(self, request: ConfirmRequest, idempotency_key: str) -> ConfirmResponse:
        logger.debug("Sending booking confirm request idempotency_key=%s", idempotency_key)
        return self._post("/confirm", request, ConfirmResponse, idempotency_key=idempotency_key)

    def _post(
        self,
        path: str,
        payload: BaseModel,
        response_model: Type[T],
        idempotency_key: Optional[str] = None,
    ) -> T:
        headers = {"Content-Type": "application/json"}
        if idempotency_key:
            headers[IDEMPOTENCY_HEADER] = idempotency_key
        try:
            resp = self.session.post(
                self.base_url + path,
                json=payload.model_dump(mode="json"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise BookingApiError(
                f"Unexpected error calling booking service: {exc}",
                status_code=502,
                operation=path,
            ) from exc

        if resp.status_code >= 400:
            raise self._to_error(path, resp)
        logger.info("Booking API %s succeeded with status %s", path, resp.status_code)
        try:
            return response_model.model_validate(resp.json())
        except (ValueError, SchemaValidationError) as exc:
            raise BookingApiError(
                f"Booking API {path} returned an unreadable body",
                status_code=502,
                response_body=resp.text,
                operation=path,
            ) from exc

    @staticmethod
    def _to_error(path: str, resp: requests.Response) -> BookingApiError:
        body = resp.text
        code = None
        message = f"Booking API call to {path} failed with status {resp.status_code}"
        try:
            data = resp.json()
            code = data.get("error_code")
            message = data.get("message") or message
        except (ValueError, AttributeError):
            pass
        logger.error("Booking API call to %s failed with status %s body=%s", path, resp.status_code, body)
        return BookingApiError(
            message,
            kind=ErrorKind.from_code(code),
            status_code=resp.status_code,
            response_body=body,
            operation=path,
        )
