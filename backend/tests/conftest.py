from datetime import datetime, timedelta, timezone

import pytest

from tripbook.core.config import BookingConfig
from tripbook.services.ledger import ConfirmationLedger
from tripbook.services.payments import PaymentGateway
from tripbook.services.pricing import PricingEngine
from tripbook.services.quotes import ItineraryQuoteAggregator, QuoteService
from tripbook.services.references import ReferenceGenerator
from tripbook.services.tokens import QuoteTokenCodec
from tripbook.storage.orders import InMemoryOrderRepository


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return BookingConfig(token_secret="test-secret-for-quote-tokens")


@pytest.fixture
def codec(config, clock):
    return QuoteTokenCodec(config.token_secret, clock=clock)


@pytest.fixture
def pricing(config):
    return PricingEngine(config.supported_currencies)


@pytest.fixture
def references():
    return ReferenceGenerator()


@pytest.fixture
def quote_service(pricing, codec, references, config, clock):
    return QuoteService(pricing, codec, references, config, clock=clock)


@pytest.fixture
def aggregator(pricing, codec, references, config, clock):
    return ItineraryQuoteAggregator(pricing, codec, references, config, clock=clock)


@pytest.fixture
def orders():
    return InMemoryOrderRepository()


@pytest.fixture
def ledger(codec, orders, references, config, clock):
    return ConfirmationLedger(codec, orders, PaymentGateway(config), references, config, clock=clock)
