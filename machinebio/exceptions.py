import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from machinebio.services.exceptions import (
    DomainError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    InvalidStateError,
    DuplicateError,
    DatabaseQueryError,
    ExternalServiceError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first matching class wins
ERROR_STATUS_CODES = [
    (ValidationError, 400, "validation_error"),
    (NotFoundError, 404, "not_found"),
    (ForbiddenError, 403, "forbidden"),
    (InvalidStateError, 409, "invalid_state"),
    (DuplicateError, 409, "duplicate"),
    (DatabaseQueryError, 500, "database_error"),
    (ExternalServiceError, 502, "external_service_error"),
]


def status_for(exc: DomainError) -> tuple[int, str]:
    for exc_class, status_code, kind in ERROR_STATUS_CODES:
        if isinstance(exc, exc_class):
            return status_code, kind
    return 500, "domain_error"


async def domain_exception_handler(request: Request, exc: DomainError):
    status_code, kind = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error": kind,
            "message": str(exc),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_exception_handler)
