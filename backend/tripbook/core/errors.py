"""Error taxonomy shared by the booking service and the trip side.

Services raise ``BookingError`` subclasses; the API layer is the only place
that turns an ``ErrorKind`` into an HTTP status and ``{error_code, message}``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    validation = "ERR_VALIDATION"
    quote_expired = "ERR_QUOTE_EXPIRED"
    token_invalid = "ERR_TOKEN_INVALID"
    payment_failed = "ERR_PAYMENT_FAILED"
    payment_token = "ERR_PAYMENT_TOKEN"
    idempotency_mismatch = "ERR_IDEMPOTENCY_MISMATCH"
    confirm_in_progress = "ERR_CONFIRM_IN_PROGRESS"
    internal = "ERR_INTERNAL"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]

    @classmethod
    def from_code(cls, code: Optional[str]) -> "ErrorKind":
        for kind in cls:
            if kind.value == code:
                return kind
        return cls.internal


_HTTP_STATUS = {
    ErrorKind.validation: 400,
    ErrorKind.quote_expired: 409,
    ErrorKind.token_invalid: 409,
    ErrorKind.payment_failed: 402,
    ErrorKind.payment_token: 400,
    ErrorKind.idempotency_mismatch: 409,
    ErrorKind.confirm_in_progress: 409,
    ErrorKind.internal: 500,
}


class BookingError(Exception):
    kind: ErrorKind = ErrorKind.internal

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.context = dict(context or {})

    @property
    def error_code(self) -> str:
        return self.kind.value

    @property
    def status_code(self) -> int:
        return self.kind.http_status

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class ValidationError(BookingError):
    kind = ErrorKind.validation


class QuoteExpiredError(BookingError):
    kind = ErrorKind.quote_expired


class TokenInvalidError(BookingError):
    kind = ErrorKind.token_invalid


class PaymentFailedError(BookingError):
    kind = ErrorKind.payment_failed


class PaymentTokenError(BookingError):
    kind = ErrorKind.payment_token


class IdempotencyMismatchError(BookingError):
    kind = ErrorKind.idempotency_mismatch


class ConfirmInProgressError(BookingError):
    """Another request with the same key is still settling; safe to retry."""

    kind = ErrorKind.confirm_in_progress


class InternalError(BookingError):
    kind = ErrorKind.internal


class BookingApiError(BookingError):
    """A booking service call failed; carries the remote error code and body."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.internal,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message, operation=operation)
        self.kind = kind
        self._status_code = status_code
        self.response_body = response_body

    @property
    def status_code(self) -> int:
        return self._status_code or self.kind.http_status


_BY_KIND = {
    ErrorKind.validation: ValidationError,
    ErrorKind.quote_expired: QuoteExpiredError,
    ErrorKind.token_invalid: TokenInvalidError,
    ErrorKind.payment_failed: PaymentFailedError,
    ErrorKind.payment_token: PaymentTokenError,
    ErrorKind.idempotency_mismatch: IdempotencyMismatchError,
    ErrorKind.confirm_in_progress: ConfirmInProgressError,
    ErrorKind.internal: InternalError,
}


def error_for_kind(kind: ErrorKind, message: str, **kwargs: Any) -> BookingError:
    return _BY_KIND[kind](message, **kwargs)
