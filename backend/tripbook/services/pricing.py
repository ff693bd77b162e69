from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional

from tripbook.core.errors import ValidationError
from tripbook.models.domain import ProductType, QuoteItem, money

PRODUCT_ALIASES = {
    "hotel": ProductType.hotel,
    "transportation": ProductType.transportation,
    "transport": ProductType.transportation,
    "attraction": ProductType.attraction,
}

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def normalize_product_type(product_type: Optional[str]) -> ProductType:
    key = (product_type or "").strip().lower()
    if key not in PRODUCT_ALIASES:
        raise ValidationError(f"Unsupported product_type: {product_type}", operation="price")
    return PRODUCT_ALIASES[key]


def _string_param(params: Mapping[str, Any], *keys: str, default: str = "") -> str:
    for key in keys:
        value = params.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return default


def _int_param(params: Mapping[str, Any], *keys: str, default: int) -> int:
    for key in keys:
        value = params.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                continue
    return default


def _decimal_param(params: Mapping[str, Any], *keys: str) -> Optional[Decimal]:
    for key in keys:
        value = params.get(key)
        if value is None or isinstance(value, bool) or value == "":
            continue
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number", operation="price")
        if not amount.is_finite() or amount < 0:
            raise ValidationError(f"{key} must be a non-negative amount", operation="price")
        return amount
    return None


def _date_param(params: Mapping[str, Any], *keys: str) -> str:
    raw = _string_param(params, *keys)
    if not raw:
        return "OPEN"
    try:
        return date.fromisoformat(raw[:10]).isoformat()
    except ValueError:
        return "OPEN"


def _key(value: str, default: str = "GEN") -> str:
    cleaned = re.sub(r"\s+", "_", value.strip()).upper()
    return cleaned or default


def _hotel(params: Mapping[str, Any], party_size: int, currency: str) -> List[QuoteItem]:
    unit_price = _decimal_param(params, "price_per_night", "unit_price", "price")
    if unit_price is None:
        raise ValidationError("Hotel quote requires price parameter", operation="price")
    nights = max(1, _int_param(params, "nights", default=1))
    hotel_name = _string_param(params, "hotel_name", "hotelName", default="Hotel")
    room_type = _string_param(params, "room_type", "roomType", default="double")
    stay_date = _date_param(params, "date", "check_in", "checkIn")
    unit_price = money(unit_price)
    return [
        QuoteItem(
            reference=f"HTL_{_key(hotel_name)}_{_key(room_type)}_{stay_date}",
            product_type=ProductType.hotel.value,
            unit_price=unit_price,
            quantity=nights,
            subtotal=money(unit_price * nights),
            currency=currency,
            fee=money(_decimal_param(params, "fees") or 0),
            provider=hotel_name,
            title=_string_param(params, "title", "name", default=hotel_name),
            cancellation_policy="48h prior: full refund",
            meta={
                "hotel_name": hotel_name,
                "room_type": room_type,
                "date": stay_date,
                "nights": nights,
                "people": _int_param(params, "people", default=party_size),
            },
        )
    ]


def _transportation(params: Mapping[str, Any], party_size: int, currency: str) -> List[QuoteItem]:
    unit_price = _decimal_param(params, "price", "unit_price")
    if unit_price is None:
        raise ValidationError("Transport quote requires price parameter", operation="price")
    origin = _string_param(params, "from").upper()
    destination = _string_param(params, "to").upper()
    travel_date = _date_param(params, "date")
    travellers = max(1, _int_param(params, "people", default=party_size))
    mode = _string_param(params, "mode", default="transport").lower()
    provider = _string_param(params, "provider")
    unit_price = money(unit_price)
    return [
        QuoteItem(
            reference=f"TP_{_key(origin)}_{_key(destination)}_{travel_date}",
            product_type=ProductType.transportation.value,
            unit_price=unit_price,
            quantity=travellers,
            subtotal=money(unit_price * travellers),
            currency=currency,
            fee=money(_decimal_param(params, "fees") or 0),
            provider=provider or None,
            title=_string_param(params, "title", default=f"{origin or '?'} to {destination or '?'}"),
            cancellation_policy="No charge until 7 days prior; 25% after.",
            meta={
                "from": origin,
                "to": destination,
                "date": travel_date,
                "time": _string_param(params, "time", "departure_time", default="00:00"),
                "mode": mode,
                "ticket_type": _string_param(params, "ticket_type", "class", default="standard").lower(),
                "people": travellers,
            },
        )
    ]


def _attraction(params: Mapping[str, Any], party_size: int, currency: str) -> List[QuoteItem]:
    ticket_price = _decimal_param(params, "ticket_price", "ticketPrice")
    people = max(1, _int_param(params, "people", default=party_size))
    if ticket_price is not None:
        unit_price, quantity = money(ticket_price), people
    else:
        flat = _decimal_param(params, "price")
        if flat is None:
            raise ValidationError("Attraction quote requires price parameter", operation="price")
        unit_price, quantity = money(flat), 1
    title = _string_param(params, "title", "name", default="Attraction")
    location = _string_param(params, "location", "city")
    session = _string_param(params, "time", "session", default="10:00")
    visit_date = _date_param(params, "date")
    return [
        QuoteItem(
            reference=f"ATN_{_key(location)}_{session.replace(':', '')}_{visit_date}",
            product_type=ProductType.attraction.value,
            unit_price=unit_price,
            quantity=quantity,
            subtotal=money(unit_price * quantity),
            currency=currency,
            fee=money(_decimal_param(params, "fees") or 0),
            provider=_string_param(params, "provider") or None,
            title=title,
            cancellation_policy="Cancellations up to 24h prior receive 80% refund",
            meta={"location": location, "date": visit_date, "time": session, "people": people},
        )
    ]


Calculator = Callable[[Mapping[str, Any], int, str], List[QuoteItem]]

CALCULATORS: Dict[ProductType, Calculator] = {
    ProductType.hotel: _hotel,
    ProductType.transportation: _transportation,
    ProductType.attraction: _attraction,
}


class PricingEngine:
    """Turns a product request into priced quote lines. Pure: no clock, no I/O."""

    def __init__(self, supported_currencies: FrozenSet[str]):
        self.supported_currencies = frozenset(c.upper() for c in supported_currencies)

    def normalize_currency(self, currency: Optional[str]) -> str:
        code = (currency or "").strip().upper()
        if not _CURRENCY_RE.match(code) or code not in self.supported_currencies:
            raise ValidationError(f"Unsupported currency: {currency}", operation="price")
        return code

    def price(
        self,
        product_type: str,
        params: Optional[Mapping[str, Any]],
        party_size: int,
        currency: str,
    ) -> List[QuoteItem]:
        kind = normalize_product_type(product_type)
        if party_size is None or isinstance(party_size, bool) or party_size <= 0:
            raise ValidationError("party_size must be positive", operation="price")
        code = self.normalize_currency(currency)
        return CALCULATORS[kind](params or {}, int(party_size), code)
