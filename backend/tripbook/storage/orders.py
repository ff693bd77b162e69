"""Order storage behind the two calls the ledger needs.

``insert_if_absent_by_key`` is the only coordination point between
concurrent confirms sharing an idempotency key: exactly one caller gets
``created=True``; everyone else gets the stored row back.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional, Protocol, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from tripbook.models.domain import Order, OrderStatus
from tripbook.storage.models import OrderModel

logger = logging.getLogger(__name__)


class DuplicateReferenceError(Exception):
    """voucher_code or invoice_id already taken by another order."""


class OrderRepository(Protocol):
    def insert_if_absent_by_key(self, order: Order) -> Tuple[Order, bool]:
        ...

    def find_by_key(self, idempotency_key: str) -> Optional[Order]:
        ...

    def update(self, order: Order) -> Order:
        ...

    def count(self) -> int:
        ...


class InMemoryOrderRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_key: Dict[str, Order] = {}
        self._vouchers: Dict[str, str] = {}
        self._invoices: Dict[str, str] = {}

    def insert_if_absent_by_key(self, order: Order) -> Tuple[Order, bool]:
        with self._lock:
            existing = self._by_key.get(order.idempotency_key)
            if existing is not None:
                return existing.copy(), False
            if order.voucher_code in self._vouchers or order.invoice_id in self._invoices:
                raise DuplicateReferenceError(order.voucher_code)
            stored = order.copy()
            self._by_key[order.idempotency_key] = stored
            self._vouchers[order.voucher_code] = order.idempotency_key
            self._invoices[order.invoice_id] = order.idempotency_key
            return stored.copy(), True

    def find_by_key(self, idempotency_key: str) -> Optional[Order]:
        with self._lock:
            found = self._by_key.get(idempotency_key)
            return found.copy() if found else None

    def update(self, order: Order) -> Order:
        with self._lock:
            if order.idempotency_key not in self._by_key:
                raise KeyError(order.idempotency_key)
            self._by_key[order.idempotency_key] = order.copy()
            return order

    def count(self) -> int:
        with self._lock:
            return len(self._by_key)


def _aware(value: datetime) -> datetime:
    # SQLite drops the offset on the way back
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_domain(model: OrderModel) -> Order:
    return Order(
        id=model.id,
        product_type=model.product_type,
        itinerary_id=model.itinerary_id,
        currency=model.currency,
        amount=Decimal(model.amount),
        fees=Decimal(model.fees),
        status=OrderStatus(model.status),
        voucher_code=model.voucher_code,
        invoice_id=model.invoice_id,
        payment_id=model.payment_id,
        idempotency_key=model.idempotency_key,
        request_fingerprint=model.request_fingerprint,
        quote_token_hash=model.quote_token_hash,
        claims_json=model.claims_json,
        selected_refs=json.loads(model.selection_refs) if model.selection_refs else [],
        error_code=model.error_code,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
    )


def _apply(model: OrderModel, order: Order) -> OrderModel:
    model.id = order.id
    model.product_type = order.product_type
    model.itinerary_id = order.itinerary_id
    model.currency = order.currency
    model.amount = order.amount
    model.fees = order.fees
    model.status = order.status.value
    model.voucher_code = order.voucher_code
    model.invoice_id = order.invoice_id
    model.payment_id = order.payment_id
    model.idempotency_key = order.idempotency_key
    model.request_fingerprint = order.request_fingerprint
    model.quote_token_hash = order.quote_token_hash
    model.claims_json = order.claims_json
    model.selection_refs = json.dumps(order.selected_refs)
    model.error_code = order.error_code
    model.created_at = order.created_at
    model.updated_at = order.updated_at
    return model


class SqlOrderRepository:
    """SQLAlchemy-backed orders; uniqueness comes from the table's UNIQUE constraints."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def insert_if_absent_by_key(self, order: Order) -> Tuple[Order, bool]:
        with self.session_factory() as session:
            session.add(_apply(OrderModel(), order))
            try:
                session.commit()
                return order.copy(), True
            except IntegrityError:
                session.rollback()
        existing = self.find_by_key(order.idempotency_key)
        if existing is not None:
            logger.debug("Idempotency key already stored key=%s", order.idempotency_key)
            return existing, False
        raise DuplicateReferenceError(order.voucher_code)

    def find_by_key(self, idempotency_key: str) -> Optional[Order]:
        with self.session_factory() as session:
            model = session.execute(
                select(OrderModel).where(OrderModel.idempotency_key == idempotency_key)
            ).scalar_one_or_none()
            return _to_domain(model) if model else None

    def update(self, order: Order) -> Order:
        with self.session_factory() as session:
            model = session.get(OrderModel, order.id)
            if model is None:
                raise KeyError(order.id)
            _apply(model, order)
            session.commit()
            return order

    def count(self) -> int:
        with self.session_factory() as session:
            return session.execute(select(func.count()).select_from(OrderModel)).scalar_one()
