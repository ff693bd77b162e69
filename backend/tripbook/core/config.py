from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import FrozenSet

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class BookingConfig:
    """Explicit configuration handed to the codec, aggregator, ledger and gateway."""

    token_secret: str
    quote_ttl: timedelta = timedelta(minutes=15)
    pending_wait: timedelta = timedelta(seconds=5)
    pending_poll_interval: timedelta = timedelta(milliseconds=50)
    reference_attempts: int = 5
    supported_currencies: FrozenSet[str] = frozenset(
        {"AUD", "USD", "EUR", "GBP", "NZD", "CAD", "SGD", "JPY", "CNY"}
    )
    payment_token_prefix: str = "pm_mock_"
    payment_decline_prefix: str = "pm_mock_decline"
    payment_failure_modulus: int = 0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    app_name: str = "Trip Booking Service"
    environment: str = "local"
    log_level: str = "INFO"
    quote_token_secret: str = "dev-secret-change-me-please-rotate-2024"
    quote_ttl_seconds: int = Field(900, gt=0)
    confirm_wait_seconds: float = Field(5.0, ge=0)
    reference_attempts: int = Field(5, ge=1)
    supported_currencies: str = "AUD,USD,EUR,GBP,NZD,CAD,SGD,JPY,CNY"
    default_currency: str = "AUD"
    payment_decline_prefix: str = "pm_mock_decline"
    payment_failure_modulus: int = Field(0, ge=0)
    default_payment_token: str = "pm_mock_visa"
    booking_service_url: str = "http://localhost:8000/api/booking"
    booking_client: str = "local"
    booking_timeout_seconds: int = 15
    ledger_backend: str = "memory"
    database_url: str = "sqlite:///./booking.db"

    def currency_set(self) -> FrozenSet[str]:
        return frozenset(
            c.strip().upper() for c in self.supported_currencies.split(",") if c.strip()
        )

    def booking_config(self) -> BookingConfig:
        return BookingConfig(
            token_secret=self.quote_token_secret,
            quote_ttl=timedelta(seconds=self.quote_ttl_seconds),
            pending_wait=timedelta(seconds=self.confirm_wait_seconds),
            reference_attempts=self.reference_attempts,
            supported_currencies=self.currency_set(),
            payment_decline_prefix=self.payment_decline_prefix,
            payment_failure_modulus=self.payment_failure_modulus,
        )


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env")
    return Settings()
