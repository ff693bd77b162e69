from decimal import Decimal

import pytest

from tripbook.core.errors import ValidationError
from tripbook.models.domain import QuoteKind
from tripbook.models.schemas import ItineraryQuoteItemRequest, ItineraryQuoteRequest, QuoteRequest
from tripbook.services.references import INVOICE_PATTERN, VOUCHER_PATTERN


def itinerary_request(**overrides):
    data = dict(
        itinerary_id="iti_trip-1",
        currency="AUD",
        items=[
            ItineraryQuoteItemRequest(
                reference="hotel_1",
                product_type="hotel",
                party_size=2,
                params={"nights": 2, "price_per_night": 150},
            ),
            ItineraryQuoteItemRequest(
                reference="transport_2",
                product_type="transportation",
                party_size=2,
                params={"price": 60, "fees": 60, "from": "SYD", "to": "MEL"},
            ),
        ],
    )
    data.update(overrides)
    return ItineraryQuoteRequest(**data)


def test_single_quote_pricing_example(quote_service):
    quote = quote_service.quote(
        QuoteRequest(product_type="hotel", currency="AUD", party_size=2, params={"nights": 2, "price": 150})
    )

    assert len(quote.items) == 1
    assert quote.items[0].subtotal == Decimal("300.00")
    assert quote.items[0].currency == "AUD"
    assert VOUCHER_PATTERN.match(quote.voucher_code)
    assert INVOICE_PATTERN.match(quote.invoice_id)


def test_itinerary_bundle_totals(aggregator, codec):
    quote = aggregator.quote(itinerary_request())

    assert [i.total for i in quote.items] == [Decimal("300.00"), Decimal("120.00")]
    assert [i.fees for i in quote.items] == [Decimal("0.00"), Decimal("60.00")]
    assert quote.bundle_total == Decimal("420.00")
    assert quote.bundle_fees == Decimal("60.00")
    assert quote.currency == "AUD"

    claims = codec.verify(quote.quote_token)
    assert claims.kind == QuoteKind.itinerary
    assert claims.itinerary_id == "iti_trip-1"
    assert claims.references == ["hotel_1", "transport_2"]
    assert claims.bundle_total == quote.bundle_total


def test_itinerary_keeps_caller_references(aggregator):
    quote = aggregator.quote(itinerary_request())

    assert quote.items[0].reference == "hotel_1"
    # the priced line keeps its own product reference
    assert quote.items[0].quote_items[0].reference.startswith("HTL_")


def test_itinerary_rejects_duplicate_references(aggregator):
    request = itinerary_request()
    request.items[1].reference = "hotel_1"

    with pytest.raises(ValidationError):
        aggregator.quote(request)


@pytest.mark.parametrize(
    "overrides",
    [
        {"itinerary_id": " "},
        {"items": []},
        {"currency": "ZZZ"},
    ],
)
def test_itinerary_validation(aggregator, overrides):
    with pytest.raises(ValidationError):
        aggregator.quote(itinerary_request(**overrides))


def test_itinerary_item_pricing_error_propagates(aggregator):
    request = itinerary_request()
    request.items[0].params = {}

    with pytest.raises(ValidationError):
        aggregator.quote(request)
