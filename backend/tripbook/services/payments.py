import hashlib
import logging
from decimal import Decimal

from tripbook.core.config import BookingConfig
from tripbook.core.errors import PaymentFailedError, PaymentTokenError

logger = logging.getLogger(__name__)


class PaymentGateway:
    """
    Simulated, deterministic payment gate. Not a payment integration.

    A token is well formed when it starts with ``pm_mock_``. Tokens starting
    with the configured decline prefix are always declined; when
    ``payment_failure_modulus`` is set, a checksum over token and amount also
    declines roughly one charge in ``modulus``.
    """

    def __init__(self, config: BookingConfig):
        self.config = config

    def validate_token(self, payment_token: str) -> None:
        if payment_token is None or not str(payment_token).strip():
            raise PaymentTokenError("Missing payment token", operation="charge")
        if not payment_token.startswith(self.config.payment_token_prefix):
            raise PaymentTokenError("Unsupported payment token", operation="charge")

    def charge(self, payment_token: str, amount: Decimal, currency: str) -> str:
        self.validate_token(payment_token)
        digest = hashlib.sha256(f"{payment_token}:{amount}:{currency}".encode("utf-8")).hexdigest()
        checksum = int(digest[:8], 16)

        declined = payment_token.startswith(self.config.payment_decline_prefix)
        modulus = self.config.payment_failure_modulus
        if modulus and checksum % modulus == 0:
            declined = True
        if declined:
            logger.info("Payment declined amount=%s currency=%s", amount, currency)
            raise PaymentFailedError("Payment authorization declined", operation="charge")
        return f"pay_{digest[:16].upper()}"
