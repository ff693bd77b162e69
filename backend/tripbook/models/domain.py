from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

CENTS = Decimal("0.01")


def money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class ProductType(str, Enum):
    hotel = "hotel"
    transportation = "transportation"
    attraction = "attraction"


class QuoteKind(str, Enum):
    single = "single"
    itinerary = "itinerary"


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    failed = "failed"


class ItemStatus(str, Enum):
    confirmed = "confirmed"
    pending = "pending"


class MirrorStatus(str, Enum):
    quoted = "quoted"
    confirmed = "confirmed"
    failed = "failed"


@dataclass(frozen=True)
class QuoteItem:
    reference: str
    product_type: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    currency: str
    fee: Decimal = Decimal("0.00")
    provider: Optional[str] = None
    title: Optional[str] = None
    cancellation_policy: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PricingResult:
    items: Tuple[QuoteItem, ...]

    @property
    def total(self) -> Decimal:
        return money(sum((i.subtotal for i in self.items), Decimal("0")))

    @property
    def fees(self) -> Decimal:
        return money(sum((i.fee for i in self.items), Decimal("0")))


@dataclass(frozen=True)
class ClaimItem:
    reference: str
    product_type: str
    party_size: int
    total: Decimal
    fees: Decimal


@dataclass(frozen=True)
class QuoteClaims:
    """Price commitment secured by a quote token."""

    kind: QuoteKind
    currency: str
    items: Tuple[ClaimItem, ...]
    bundle_total: Decimal
    bundle_fees: Decimal
    issued_at: datetime
    expires_at: datetime
    nonce: str
    itinerary_id: Optional[str] = None

    @property
    def references(self) -> List[str]:
        return [i.reference for i in self.items]

    def item(self, reference: str) -> Optional[ClaimItem]:
        for candidate in self.items:
            if candidate.reference == reference:
                return candidate
        return None


@dataclass(frozen=True)
class PricedItineraryItem:
    reference: str
    product_type: str
    party_size: int
    total: Decimal
    fees: Decimal
    quote_items: Tuple[QuoteItem, ...]


@dataclass(frozen=True)
class SingleQuote:
    voucher_code: str
    invoice_id: str
    quote_token: str
    expires_at: datetime
    items: Tuple[QuoteItem, ...]


@dataclass(frozen=True)
class ItineraryQuote:
    quote_token: str
    expires_at: datetime
    voucher_code: str
    invoice_id: str
    currency: str
    items: Tuple[PricedItineraryItem, ...]
    bundle_total: Decimal
    bundle_fees: Decimal


@dataclass
class Order:
    id: str
    product_type: str
    currency: str
    amount: Decimal
    fees: Decimal
    status: OrderStatus
    voucher_code: str
    invoice_id: str
    idempotency_key: str
    request_fingerprint: str
    quote_token_hash: str
    claims_json: str
    selected_refs: List[str]
    created_at: datetime
    updated_at: datetime
    itinerary_id: Optional[str] = None
    payment_id: Optional[str] = None
    error_code: Optional[str] = None

    def copy(self) -> "Order":
        return replace(self, selected_refs=list(self.selected_refs))


@dataclass(frozen=True)
class ConfirmedItem:
    reference: str
    status: ItemStatus


@dataclass(frozen=True)
class ConfirmResult:
    status: OrderStatus
    voucher_code: str
    invoice_id: str
    confirmed_items: Tuple[ConfirmedItem, ...]


@dataclass
class Trip:
    trip_id: str
    currency: Optional[str] = None
    people: Optional[int] = None
    destination: Optional[str] = None


@dataclass
class TripItem:
    entity_id: int
    trip_id: str
    product_type: ProductType
    title: str
    params: Dict[str, Any] = field(default_factory=dict)
    item_date: Optional[date] = None
    currency: Optional[str] = None
    reservation_required: bool = True
    status: str = "pending"


@dataclass
class TripBookingQuote:
    id: str
    trip_id: str
    entity_id: int
    product_type: str
    item_reference: str
    status: MirrorStatus
    created_at: datetime
    updated_at: datetime
    quote_token: Optional[str] = None
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    voucher_code: Optional[str] = None
    invoice_id: Optional[str] = None
    raw_response: Optional[str] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
