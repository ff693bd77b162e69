from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripbook.api import routes_booking, routes_health, routes_trips
from tripbook.api.errors import register_error_handlers
from tripbook.clients.booking_client import HttpBookingClient, LocalBookingClient
from tripbook.core.config import Settings, get_settings
from tripbook.core.logging import configure_logging
from tripbook.services.ledger import ConfirmationLedger
from tripbook.services.orchestrator import BookingOrchestrator
from tripbook.services.payments import PaymentGateway
from tripbook.services.pricing import PricingEngine
from tripbook.services.quotes import ItineraryQuoteAggregator, QuoteService
from tripbook.services.references import ReferenceGenerator
from tripbook.services.tokens import QuoteTokenCodec
from tripbook.storage.db import create_db_engine, create_session_factory, init_db
from tripbook.storage.orders import InMemoryOrderRepository, SqlOrderRepository
from tripbook.storage.repository import InMemoryRepository


def _order_repository(settings: Settings):
    if settings.ledger_backend.lower() == "sql":
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        return SqlOrderRepository(create_session_factory(engine))
    return InMemoryOrderRepository()


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    config = settings.booking_config()
    pricing = PricingEngine(config.supported_currencies)
    references = ReferenceGenerator()
    codec = QuoteTokenCodec(config.token_secret, clock=clock)
    quote_service = QuoteService(pricing, codec, references, config, clock=clock)
    aggregator = ItineraryQuoteAggregator(pricing, codec, references, config, clock=clock)
    ledger = ConfirmationLedger(
        codec,
        _order_repository(settings),
        PaymentGateway(config),
        references,
        config,
        clock=clock,
    )

    if settings.booking_client.lower() == "http":
        client = HttpBookingClient(settings.booking_service_url, timeout=settings.booking_timeout_seconds)
    else:
        client = LocalBookingClient(quote_service, aggregator, ledger)

    repository = InMemoryRepository()
    orchestrator = BookingOrchestrator(
        repository,
        client,
        default_currency=settings.default_currency,
        default_payment_token=settings.default_payment_token,
        clock=clock,
    )

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(routes_booking.router, prefix="/api/booking", tags=["booking"])
    app.include_router(routes_trips.router, prefix="/trips", tags=["trips"])

    # Inject services into state for dependencies
    app.state.settings = settings
    app.state.repository = repository
    app.state.quote_service = quote_service
    app.state.aggregator = aggregator
    app.state.ledger = ledger
    app.state.booking_client = client
    app.state.orchestrator = orchestrator
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
