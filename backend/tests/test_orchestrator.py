from datetime import date
from decimal import Decimal

import pytest

from tripbook.clients.booking_client import LocalBookingClient
from tripbook.core.errors import InternalError, PaymentFailedError, ValidationError
from tripbook.models.domain import MirrorStatus, ProductType, Trip, TripItem
from tripbook.services.orchestrator import BookingOrchestrator
from tripbook.storage.repository import InMemoryRepository


@pytest.fixture
def repository():
    repository = InMemoryRepository()
    repository.save_trip(Trip(trip_id="trip-1", currency="AUD", people=2, destination="Sydney"))
    repository.save_item(
        TripItem(
            entity_id=1,
            trip_id="trip-1",
            product_type=ProductType.hotel,
            title="Harbour Hotel",
            params={"nights": 2, "price_per_night": 150, "hotel_name": "Harbour Hotel"},
            item_date=date(2026, 5, 1),
        )
    )
    repository.save_item(
        TripItem(
            entity_id=2,
            trip_id="trip-1",
            product_type=ProductType.transportation,
            title="SYD to MEL",
            params={"price": 60, "fees": 60, "from": "SYD", "to": "MEL"},
            item_date=date(2026, 5, 3),
        )
    )
    repository.save_item(
        TripItem(
            entity_id=3,
            trip_id="trip-1",
            product_type=ProductType.attraction,
            title="Beach walk",
            params={"price": 0},
            reservation_required=False,
        )
    )
    return repository


@pytest.fixture
def orchestrator(repository, quote_service, aggregator, ledger, clock):
    client = LocalBookingClient(quote_service, aggregator, ledger)
    return BookingOrchestrator(repository, client, clock=clock)


def mirror(repository, product_type, entity_id):
    return repository.find_quote("trip-1", entity_id, product_type)


def test_quote_single_item_stores_mirror_row(orchestrator, repository):
    quote = orchestrator.quote_single_item("trip-1", "hotel", 1)

    assert quote.status == MirrorStatus.quoted
    assert quote.item_reference == "hotel_1"
    assert quote.total_amount == Decimal("300.00")
    assert quote.currency == "AUD"
    assert quote.quote_token
    assert mirror(repository, "hotel", 1) is quote


def test_requote_updates_the_same_row(orchestrator, repository):
    first = orchestrator.quote_single_item("trip-1", "hotel", 1)
    first_token = first.quote_token
    second = orchestrator.quote_single_item("trip-1", "hotel", 1)

    assert second.id == first.id
    assert second.quote_token != first_token
    assert len(repository.list_quotes_for_trip("trip-1")) == 1


def test_quote_single_item_unknown_item(orchestrator):
    with pytest.raises(ValidationError):
        orchestrator.quote_single_item("trip-1", "hotel", 99)
    with pytest.raises(ValidationError):
        orchestrator.quote_single_item("missing-trip", "hotel", 1)


def test_failed_quote_is_recorded(orchestrator, repository):
    repository.get_item(ProductType.hotel, 1).params = {"nights": 2}

    with pytest.raises(ValidationError):
        orchestrator.quote_single_item("trip-1", "hotel", 1)

    row = mirror(repository, "hotel", 1)
    assert row.status == MirrorStatus.failed
    assert row.quote_token is None
    assert "price" in row.raw_response


def test_quote_itinerary_skips_items_without_reservation(orchestrator, repository):
    response = orchestrator.quote_itinerary("trip-1")

    assert [i.reference for i in response.items] == ["hotel_1", "transport_2"]
    assert response.bundle_total == Decimal("420.00")
    assert response.bundle_fees == Decimal("60.00")

    hotel = mirror(repository, "hotel", 1)
    transport = mirror(repository, "transportation", 2)
    assert hotel.quote_token == transport.quote_token == response.quote_token
    assert transport.total_amount == Decimal("180.00")
    assert mirror(repository, "attraction", 3) is None


def test_quote_itinerary_failure_marks_all_items(orchestrator, repository):
    repository.get_item(ProductType.transportation, 2).params = {}

    with pytest.raises(ValidationError):
        orchestrator.quote_itinerary("trip-1")

    assert mirror(repository, "hotel", 1).status == MirrorStatus.failed
    assert mirror(repository, "transportation", 2).status == MirrorStatus.failed


def test_quote_itinerary_with_nothing_to_book(orchestrator, repository):
    for item in repository.list_items_for_trip("trip-1"):
        item.reservation_required = False

    with pytest.raises(ValidationError):
        orchestrator.quote_itinerary("trip-1")


def test_partial_confirm_updates_only_selected_rows(orchestrator, repository):
    token = orchestrator.quote_itinerary("trip-1").quote_token

    response = orchestrator.confirm_booking(token, ["hotel_1"], idempotency_key="key-1")

    assert response.status == "confirmed"
    hotel = mirror(repository, "hotel", 1)
    transport = mirror(repository, "transportation", 2)
    assert hotel.status == MirrorStatus.confirmed
    assert hotel.voucher_code == response.voucher_code
    assert hotel.invoice_id == response.invoice_id
    assert transport.status == MirrorStatus.quoted
    assert transport.voucher_code is None
    assert repository.get_item(ProductType.hotel, 1).status == "confirmed"
    assert repository.get_item(ProductType.transportation, 2).status == "pending"

    # the remaining item is the only one left to quote
    follow_up = orchestrator.quote_itinerary("trip-1")
    assert [i.reference for i in follow_up.items] == ["transport_2"]


def test_confirm_without_key_generates_one(orchestrator, ledger):
    token = orchestrator.quote_single_item("trip-1", "hotel", 1).quote_token

    first = orchestrator.confirm_booking(token, [])
    second = orchestrator.confirm_booking(token, [])

    # fresh keys mean two distinct orders
    assert first.voucher_code != second.voucher_code
    assert ledger.repository.count() == 2


def test_confirm_replay_with_same_key(orchestrator, ledger):
    token = orchestrator.quote_single_item("trip-1", "hotel", 1).quote_token

    first = orchestrator.confirm_booking(token, ["hotel_1"], idempotency_key="key-1")
    second = orchestrator.confirm_booking(token, ["hotel_1"], idempotency_key="key-1")

    assert first == second
    assert ledger.repository.count() == 1


def test_declined_confirm_leaves_rows_quoted(orchestrator, repository):
    token = orchestrator.quote_single_item("trip-1", "hotel", 1).quote_token

    with pytest.raises(PaymentFailedError):
        orchestrator.confirm_booking(token, [], payment_token="pm_mock_decline", idempotency_key="key-1")

    assert mirror(repository, "hotel", 1).status == MirrorStatus.quoted


def test_unexpected_reference_from_booking_service(repository, quote_service, aggregator, ledger, clock):
    class RenamingClient(LocalBookingClient):
        def itinerary_quote(self, request):
            response = super().itinerary_quote(request)
            response.items[0].reference = "hotel_404"
            return response

    orchestrator = BookingOrchestrator(
        repository, RenamingClient(quote_service, aggregator, ledger), clock=clock
    )

    with pytest.raises(InternalError):
        orchestrator.quote_itinerary("trip-1")


def test_list_quotes(orchestrator):
    orchestrator.quote_single_item("trip-1", "hotel", 1)
    orchestrator.quote_single_item("trip-1", "transport", 2)

    quotes = orchestrator.list_quotes("trip-1")
    assert sorted(q.item_reference for q in quotes) == ["hotel_1", "transport_2"]
