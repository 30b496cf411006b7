"""Map domain exceptions to HTTP responses"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rentease_ledger.domain.exceptions import (
    AuthorizationError,
    DomainException,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

# Checked in order; subclasses (InsufficientPointsError) resolve through isinstance
STATUS_CODES = [
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (GatewayError, 502),
]


def status_for(exc: DomainException) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = status_for(exc)
    request_id = getattr(request.state, "request_id", "unknown")
    if status_code >= 500:
        logging.error(f"{type(exc).__name__}: {exc}", extra={"request_id": request_id})
    else:
        logging.warning(f"{type(exc).__name__}: {exc}", extra={"request_id": request_id})

    detail = str(exc) if status_code < 500 or isinstance(exc, GatewayError) else "Internal server error"
    return JSONResponse(status_code=status_code, content={"detail": detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)
