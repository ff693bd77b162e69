from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from tripbook.core.config import BookingConfig
from tripbook.core.errors import (
    BookingError,
    ConfirmInProgressError,
    ErrorKind,
    IdempotencyMismatchError,
    InternalError,
    ValidationError,
    error_for_kind,
)
from tripbook.models.domain import (
    ConfirmedItem,
    ConfirmResult,
    ItemStatus,
    Order,
    OrderStatus,
    QuoteClaims,
    QuoteKind,
    money,
    utc_now,
)
from tripbook.services.payments import PaymentGateway
from tripbook.services.references import ReferenceGenerator
from tripbook.services.tokens import QuoteTokenCodec, canonical_json, claims_from_dict, token_hash
from tripbook.storage.orders import DuplicateReferenceError, OrderRepository

logger = logging.getLogger(__name__)

MAX_IDEMPOTENCY_KEY_LENGTH = 128


def _sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def request_fingerprint(quote_token: str, payment_token: str, requested_refs: Sequence[str]) -> str:
    # JSON keeps ["a,b"] and ["a", "b"] apart
    material = [token_hash(quote_token), _sha256(payment_token), list(requested_refs)]
    return _sha256(json.dumps(material, separators=(",", ":")))


def normalize_refs(item_refs: Optional[Sequence[str]]) -> List[str]:
    return sorted({ref.strip() for ref in (item_refs or []) if ref and ref.strip()})


class ConfirmationLedger:
    """
    Turns a signed quote into exactly one order per idempotency key.

    A retry with the same key and the same request gets the stored result
    back without charging again; the same key with a different request is
    rejected. Concurrent duplicates are settled by the repository's
    insert-if-absent, never by in-process locking here; a duplicate that
    finds the winner still charging waits up to ``pending_wait`` for the
    terminal status before answering with ``ConfirmInProgressError``.
    """

    def __init__(
        self,
        codec: QuoteTokenCodec,
        repository: OrderRepository,
        payments: PaymentGateway,
        references: ReferenceGenerator,
        config: BookingConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.codec = codec
        self.repository = repository
        self.payments = payments
        self.references = references
        self.config = config
        self.clock = clock or utc_now

    def confirm(
        self,
        quote_token: str,
        payment_token: str,
        item_refs: Optional[Sequence[str]],
        idempotency_key: Optional[str],
    ) -> ConfirmResult:
        try:
            return self._confirm(quote_token, payment_token, item_refs, idempotency_key)
        except BookingError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure confirming quote idempotency_key=%s", idempotency_key)
            raise InternalError(
                "Unexpected failure confirming quote",
                operation="confirm",
                context={"idempotency_key": idempotency_key},
            ) from exc

    def _confirm(
        self,
        quote_token: str,
        payment_token: str,
        item_refs: Optional[Sequence[str]],
        idempotency_key: Optional[str],
    ) -> ConfirmResult:
        claims = self.codec.verify(quote_token)

        key = (idempotency_key or "").strip()
        if not key:
            raise ValidationError("Idempotency-Key is required", operation="confirm")
        if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationError("Idempotency-Key is too long", operation="confirm")
        self.payments.validate_token(payment_token)
        requested = normalize_refs(item_refs)
        selected = self._select(claims, requested)
        fingerprint = request_fingerprint(quote_token, payment_token, requested)

        existing = self.repository.find_by_key(key)
        if existing is not None:
            return self._replay(existing, fingerprint)

        order, created = self._reserve(claims, quote_token, key, fingerprint, selected)
        if not created:
            logger.info("Concurrent confirm lost the race idempotency_key=%s", key)
            return self._replay(order, fingerprint)

        charge_amount = order.amount + order.fees
        try:
            payment_id = self.payments.charge(payment_token, charge_amount, order.currency)
        except BookingError as exc:
            self._fail(order, exc.error_code)
            raise
        except Exception:
            # the row must not stay pending; replays of this key report the failure
            self._fail(order, ErrorKind.internal.value)
            raise

        order.status = OrderStatus.confirmed
        order.payment_id = payment_id
        order.updated_at = self.clock()
        self.repository.update(order)
        logger.info(
            "Order confirmed id=%s voucher=%s invoice=%s items=%s",
            order.id,
            order.voucher_code,
            order.invoice_id,
            order.selected_refs,
        )
        return self._result(order)

    def _select(self, claims: QuoteClaims, requested: List[str]) -> List[str]:
        if not requested:
            return claims.references
        unknown = [ref for ref in requested if claims.item(ref) is None]
        if unknown:
            raise ValidationError(
                f"Unknown item references: {', '.join(unknown)}",
                operation="confirm",
                context={"item_refs": unknown},
            )
        # claim order, not caller order
        return [ref for ref in claims.references if ref in requested]

    def _reserve(
        self,
        claims: QuoteClaims,
        quote_token: str,
        key: str,
        fingerprint: str,
        selected: List[str],
    ) -> Tuple[Order, bool]:
        chosen = [claims.item(ref) for ref in selected]
        amount = money(sum((i.total for i in chosen), Decimal("0")))
        fees = money(sum((i.fees for i in chosen), Decimal("0")))
        product_type = "itinerary" if claims.kind == QuoteKind.itinerary else claims.items[0].product_type
        claims_json = canonical_json(claims)
        tok_hash = token_hash(quote_token)

        for attempt in range(1, self.config.reference_attempts + 1):
            now = self.clock()
            order = Order(
                id=str(uuid.uuid4()),
                product_type=product_type,
                itinerary_id=claims.itinerary_id,
                currency=claims.currency,
                amount=amount,
                fees=fees,
                status=OrderStatus.pending,
                voucher_code=self.references.voucher_code(),
                invoice_id=self.references.invoice_id(),
                idempotency_key=key,
                request_fingerprint=fingerprint,
                quote_token_hash=tok_hash,
                claims_json=claims_json,
                selected_refs=list(selected),
                created_at=now,
                updated_at=now,
            )
            try:
                return self.repository.insert_if_absent_by_key(order)
            except DuplicateReferenceError:
                logger.warning(
                    "Voucher/invoice collision on attempt %d idempotency_key=%s", attempt, key
                )
        raise InternalError(
            "Could not allocate a unique voucher/invoice reference",
            operation="confirm",
            context={"idempotency_key": key, "attempts": self.config.reference_attempts},
        )

    def _fail(self, order: Order, error_code: str) -> None:
        order.status = OrderStatus.failed
        order.error_code = error_code
        order.updated_at = self.clock()
        self.repository.update(order)
        logger.info("Order %s failed: %s idempotency_key=%s", order.id, error_code, order.idempotency_key)

    def _settled(self, order: Order) -> Order:
        """Wait for an in-flight order with the same key to reach a terminal status."""
        deadline = time.monotonic() + self.config.pending_wait.total_seconds()
        interval = self.config.pending_poll_interval.total_seconds()
        while order.status == OrderStatus.pending:
            if time.monotonic() >= deadline:
                raise ConfirmInProgressError(
                    "Confirmation with this Idempotency-Key is still in progress; retry shortly",
                    operation="confirm",
                    context={"idempotency_key": order.idempotency_key, "order_id": order.id},
                )
            time.sleep(interval)
            order = self.repository.find_by_key(order.idempotency_key) or order
        return order

    def _replay(self, order: Order, fingerprint: str) -> ConfirmResult:
        context = {"idempotency_key": order.idempotency_key, "order_id": order.id}
        if order.request_fingerprint != fingerprint:
            logger.warning("Idempotency key reused with a different request key=%s", order.idempotency_key)
            raise IdempotencyMismatchError(
                "Idempotency key already used with a different request",
                operation="confirm",
                context=context,
            )
        order = self._settled(order)
        if order.status == OrderStatus.failed:
            kind = ErrorKind.from_code(order.error_code)
            message = (
                "Payment authorization declined"
                if kind == ErrorKind.payment_failed
                else "Previous confirm attempt failed"
            )
            raise error_for_kind(kind, message, operation="confirm", context=context)
        return self._result(order)

    def _result(self, order: Order) -> ConfirmResult:
        claims = claims_from_dict(json.loads(order.claims_json))
        confirmed = order.status == OrderStatus.confirmed
        items = tuple(
            ConfirmedItem(
                reference=ref,
                status=ItemStatus.confirmed if confirmed and ref in order.selected_refs else ItemStatus.pending,
            )
            for ref in claims.references
        )
        return ConfirmResult(
            status=order.status,
            voucher_code=order.voucher_code,
            invoice_id=order.invoice_id,
            confirmed_items=items,
        )
