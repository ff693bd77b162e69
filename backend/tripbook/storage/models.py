from sqlalchemy import Column, DateTime, Numeric, String, Text

from tripbook.storage.db import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    product_type = Column(String(50), nullable=False)
    itinerary_id = Column(String(64), index=True, nullable=True)
    currency = Column(String(3), nullable=False)
    amount = Column(Numeric(16, 2), nullable=False)
    fees = Column(Numeric(16, 2), nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    voucher_code = Column(String(24), nullable=False, unique=True)
    invoice_id = Column(String(20), nullable=False, unique=True)
    payment_id = Column(String(40), nullable=True)
    idempotency_key = Column(String(128), unique=True, index=True, nullable=True)
    request_fingerprint = Column(String(64), nullable=False)
    quote_token_hash = Column(String(64), nullable=False)
    claims_json = Column(Text, nullable=False)
    selection_refs = Column(Text, nullable=True)
    error_code = Column(String(40), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
