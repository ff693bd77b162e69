import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tripbook.core.errors import BookingError, ErrorKind
from tripbook.models.schemas import ErrorResponse

logger = logging.getLogger(__name__)


def error_response(status_code: int, error_code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error_code=error_code, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.kind == ErrorKind.internal:
        logger.error("Internal booking error on %s: %s context=%s", request.url.path, exc, exc.context)
    else:
        logger.info("Booking request %s rejected: %s %s", request.url.path, exc.error_code, exc)
    return error_response(exc.status_code, exc.error_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return error_response(400, ErrorKind.validation.value, problems or "Invalid request")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
