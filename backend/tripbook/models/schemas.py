from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from tripbook.models.domain import (
    ConfirmResult,
    ItineraryQuote,
    PricedItineraryItem,
    QuoteItem,
    SingleQuote,
    TripBookingQuote,
)


class QuoteRequest(BaseModel):
    product_type: str
    currency: str
    party_size: int
    params: Dict[str, Any] = Field(default_factory=dict)
    item_reference: Optional[str] = None
    trip_id: Optional[str] = None
    entity_id: Optional[int] = None


class QuoteItemSchema(BaseModel):
    reference: str
    product_type: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    fee: Decimal = Decimal("0.00")
    currency: str
    provider: Optional[str] = None
    title: Optional[str] = None
    cancellation_policy: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, obj: QuoteItem) -> "QuoteItemSchema":
        return cls(
            reference=obj.reference,
            product_type=obj.product_type,
            unit_price=obj.unit_price,
            quantity=obj.quantity,
            subtotal=obj.subtotal,
            fee=obj.fee,
            currency=obj.currency,
            provider=obj.provider,
            title=obj.title,
            cancellation_policy=obj.cancellation_policy,
            meta=dict(obj.meta),
        )


class QuoteResponse(BaseModel):
    voucher_code: str
    invoice_id: str
    quote_token: str
    expires_at: datetime
    items: List[QuoteItemSchema]

    @classmethod
    def from_domain(cls, obj: SingleQuote) -> "QuoteResponse":
        return cls(
            voucher_code=obj.voucher_code,
            invoice_id=obj.invoice_id,
            quote_token=obj.quote_token,
            expires_at=obj.expires_at,
            items=[QuoteItemSchema.from_domain(i) for i in obj.items],
        )


class ItineraryQuoteItemRequest(BaseModel):
    reference: str
    product_type: str
    party_size: int
    params: Dict[str, Any] = Field(default_factory=dict)
    entity_id: Optional[int] = None


class ItineraryQuoteRequest(BaseModel):
    itinerary_id: str
    currency: str
    items: List[ItineraryQuoteItemRequest]
    trip_id: Optional[str] = None


class ItineraryQuoteItemSchema(BaseModel):
    reference: str
    product_type: str
    party_size: int
    total: Decimal
    fees: Decimal
    quote_items: List[QuoteItemSchema]

    @classmethod
    def from_domain(cls, obj: PricedItineraryItem) -> "ItineraryQuoteItemSchema":
        return cls(
            reference=obj.reference,
            product_type=obj.product_type,
            party_size=obj.party_size,
            total=obj.total,
            fees=obj.fees,
            quote_items=[QuoteItemSchema.from_domain(i) for i in obj.quote_items],
        )


class ItineraryQuoteResponse(BaseModel):
    quote_token: str
    expires_at: datetime
    voucher_code: Optional[str] = None
    invoice_id: Optional[str] = None
    currency: str
    items: List[ItineraryQuoteItemSchema]
    bundle_total: Decimal
    bundle_fees: Decimal

    @classmethod
    def from_domain(cls, obj: ItineraryQuote) -> "ItineraryQuoteResponse":
        return cls(
            quote_token=obj.quote_token,
            expires_at=obj.expires_at,
            voucher_code=obj.voucher_code,
            invoice_id=obj.invoice_id,
            currency=obj.currency,
            items=[ItineraryQuoteItemSchema.from_domain(i) for i in obj.items],
            bundle_total=obj.bundle_total,
            bundle_fees=obj.bundle_fees,
        )


class ConfirmRequest(BaseModel):
    quote_token: str
    payment_token: str
    item_refs: List[str] = Field(default_factory=list)


class ConfirmedItemSchema(BaseModel):
    reference: str
    status: str


class ConfirmResponse(BaseModel):
    status: str
    voucher_code: str
    invoice_id: str
    confirmed_items: List[ConfirmedItemSchema]

    @classmethod
    def from_domain(cls, obj: ConfirmResult) -> "ConfirmResponse":
        return cls(
            status=obj.status.value,
            voucher_code=obj.voucher_code,
            invoice_id=obj.invoice_id,
            confirmed_items=[
                ConfirmedItemSchema(reference=i.reference, status=i.status.value)
                for i in obj.confirmed_items
            ],
        )


class ErrorResponse(BaseModel):
    error_code: str
    message: str


class TripConfirmRequest(BaseModel):
    quote_token: str
    item_refs: List[str] = Field(default_factory=list)
    payment_token: Optional[str] = None


class TripBookingQuoteSchema(BaseModel):
    id: str
    trip_id: str
    entity_id: int
    product_type: str
    item_reference: str
    status: str
    quote_token: Optional[str] = None
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    voucher_code: Optional[str] = None
    invoice_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, obj: TripBookingQuote) -> "TripBookingQuoteSchema":
        return cls(
            id=obj.id,
            trip_id=obj.trip_id,
            entity_id=obj.entity_id,
            product_type=obj.product_type,
            item_reference=obj.item_reference,
            status=obj.status.value,
            quote_token=obj.quote_token,
            total_amount=obj.total_amount,
            currency=obj.currency,
            voucher_code=obj.voucher_code,
            invoice_id=obj.invoice_id,
            created_at=obj.created_at,
            updated_at=obj.updated_at,
        )


class TripQuotesResponse(BaseModel):
    quotes: List[TripBookingQuoteSchema]
