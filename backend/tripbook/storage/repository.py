from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple

from tripbook.models.domain import ProductType, Trip, TripBookingQuote, TripItem


class InMemoryRepository:
    """Trip-side store: trips, their bookable items and the local quote mirror."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.trips: Dict[str, Trip] = {}
        self.items: Dict[Tuple[str, int], TripItem] = {}
        self.quotes: Dict[str, TripBookingQuote] = {}

    def save_trip(self, trip: Trip) -> Trip:
        with self._lock:
            self.trips[trip.trip_id] = trip
            return trip

    def get_trip(self, trip_id: str) -> Optional[Trip]:
        return self.trips.get(trip_id)

    def save_item(self, item: TripItem) -> TripItem:
        with self._lock:
            self.items[(item.product_type.value, item.entity_id)] = item
            return item

    def get_item(self, product_type: ProductType, entity_id: int) -> Optional[TripItem]:
        return self.items.get((product_type.value, entity_id))

    def list_items_for_trip(self, trip_id: str) -> List[TripItem]:
        return [i for i in self.items.values() if i.trip_id == trip_id]

    def save_quote(self, quote: TripBookingQuote) -> TripBookingQuote:
        with self._lock:
            self.quotes[quote.id] = quote
            return quote

    def find_quote(self, trip_id: str, entity_id: int, product_type: str) -> Optional[TripBookingQuote]:
        for quote in self.quotes.values():
            if (
                quote.trip_id == trip_id
                and quote.entity_id == entity_id
                and quote.product_type == product_type
            ):
                return quote
        return None

    def find_quotes_by_token(self, quote_token: str, item_reference: str) -> List[TripBookingQuote]:
        return [
            q
            for q in self.quotes.values()
            if q.quote_token == quote_token and q.item_reference == item_reference
        ]

    def list_quotes_for_trip(self, trip_id: str) -> List[TripBookingQuote]:
        return [q for q in self.quotes.values() if q.trip_id == trip_id]
