from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from main import create_app
from tripbook.core.config import Settings
from tripbook.models.domain import ProductType, Trip, TripItem

ITINERARY = {
    "itinerary_id": "iti_trip-1",
    "currency": "AUD",
    "items": [
        {
            "reference": "hotel_1",
            "product_type": "hotel",
            "party_size": 2,
            "params": {"nights": 2, "price_per_night": 150},
        },
        {
            "reference": "transport_2",
            "product_type": "transportation",
            "party_size": 2,
            "params": {"price": 60, "fees": 60},
        },
    ],
}


@pytest.fixture
def app(clock):
    settings = Settings(
        quote_token_secret="api-test-secret",
        ledger_backend="memory",
        booking_client="local",
    )
    return create_app(settings=settings, clock=clock)


@pytest.fixture
def client(app):
    return TestClient(app)


def itinerary_token(client):
    response = client.post("/api/booking/itinerary/quote", json=ITINERARY)
    assert response.status_code == 200
    return response.json()["quote_token"]


def confirm(client, token, key="key-1", item_refs=None, payment_token="pm_mock_visa"):
    headers = {"Idempotency-Key": key} if key else {}
    return client.post(
        "/api/booking/confirm",
        json={"quote_token": token, "payment_token": payment_token, "item_refs": item_refs or []},
        headers=headers,
    )


def test_health_and_ping(client):
    assert client.get("/health").json() == {"status": "ok", "service": "Trip Booking Service"}
    assert client.get("/api/booking/ping").status_code == 200


def test_single_quote(client):
    response = client.post(
        "/api/booking/quote",
        json={"product_type": "hotel", "currency": "AUD", "party_size": 2, "params": {"nights": 2, "price": 150}},
    )

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["items"][0]["subtotal"]) == Decimal("300")
    assert body["items"][0]["currency"] == "AUD"
    assert body["voucher_code"].startswith("VCH-")
    assert body["invoice_id"].startswith("INV_")
    assert body["quote_token"]


def test_itinerary_quote_bundle(client):
    body = client.post("/api/booking/itinerary/quote", json=ITINERARY).json()

    assert Decimal(body["bundle_total"]) == Decimal("420")
    assert Decimal(body["bundle_fees"]) == Decimal("60")
    assert [i["reference"] for i in body["items"]] == ["hotel_1", "transport_2"]


def test_request_validation_maps_to_error_taxonomy(client):
    response = client.post("/api/booking/quote", json={"product_type": "hotel", "currency": "AUD"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"
    assert set(response.json()) == {"error_code", "message"}


def test_unsupported_currency(client):
    response = client.post(
        "/api/booking/quote",
        json={"product_type": "hotel", "currency": "XYZ", "party_size": 1, "params": {"price": 10}},
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"


def test_confirm_and_replay(client):
    token = itinerary_token(client)

    first = confirm(client, token)
    second = confirm(client, token)

    assert first.status_code == 200
    assert first.json()["status"] == "confirmed"
    assert second.json() == first.json()


def test_confirm_error_codes(client, clock):
    token = itinerary_token(client)
    confirm(client, token, key="key-1", item_refs=["hotel_1"])

    cases = [
        (confirm(client, token, key="key-1", item_refs=["transport_2"]), 409, "ERR_IDEMPOTENCY_MISMATCH"),
        (confirm(client, token, key=None), 400, "ERR_VALIDATION"),
        (confirm(client, "not-a-token", key="key-2"), 409, "ERR_TOKEN_INVALID"),
        (confirm(client, token, key="key-3", payment_token="visa"), 400, "ERR_PAYMENT_TOKEN"),
        (confirm(client, token, key="key-4", payment_token="pm_mock_decline"), 402, "ERR_PAYMENT_FAILED"),
        (confirm(client, token, key="key-5", item_refs=["nope"]), 400, "ERR_VALIDATION"),
    ]
    for response, status, code in cases:
        assert response.status_code == status
        assert response.json()["error_code"] == code

    clock.advance(minutes=20)
    expired = confirm(client, token, key="key-6")
    assert expired.status_code == 409
    assert expired.json()["error_code"] == "ERR_QUOTE_EXPIRED"


def test_trip_booking_flow(app, client):
    repository = app.state.repository
    repository.save_trip(Trip(trip_id="trip-1", currency="AUD", people=2))
    repository.save_item(
        TripItem(
            entity_id=1,
            trip_id="trip-1",
            product_type=ProductType.hotel,
            title="Harbour Hotel",
            params={"nights": 2, "price_per_night": 150},
            item_date=date(2026, 5, 1),
        )
    )
    repository.save_item(
        TripItem(
            entity_id=2,
            trip_id="trip-1",
            product_type=ProductType.attraction,
            title="Opera tour",
            params={"ticket_price": 45},
        )
    )

    single = client.post("/trips/trip-1/items/hotel/1/quote")
    assert single.status_code == 200
    assert single.json()["status"] == "quoted"
    assert single.json()["item_reference"] == "hotel_1"

    itinerary = client.post("/trips/trip-1/itinerary/quote").json()
    assert Decimal(itinerary["bundle_total"]) == Decimal("390")

    confirmed = client.post(
        "/trips/confirm",
        json={"quote_token": itinerary["quote_token"], "item_refs": ["attraction_2"]},
        headers={"Idempotency-Key": "trip-key-1"},
    )
    assert confirmed.status_code == 200

    quotes = {q["item_reference"]: q for q in client.get("/trips/trip-1/quotes").json()["quotes"]}
    assert quotes["attraction_2"]["status"] == "confirmed"
    assert quotes["attraction_2"]["voucher_code"] == confirmed.json()["voucher_code"]
    assert quotes["hotel_1"]["status"] == "quoted"


def test_trip_errors_use_the_same_taxonomy(client):
    response = client.post("/trips/unknown/itinerary/quote")

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"
