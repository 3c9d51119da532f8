import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from exceptions import LedgerError
from .schemas import FIELD_ERROR_CODES

logger = logging.getLogger(__name__)


def _error(request: Request, status_code: int, message: str, code: str) -> JSONResponse:
    # Picked up by the request logging middleware
    request.state.error_code = code
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return _error(request, exc.status_code, exc.message, exc.code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Report the first invalid field with that field's own error code.

    Fields without a declared code fall back to VALIDATION_ERROR. Messages
    name the field only; submitted values may hold wallets or amounts.
    """
    errors = exc.errors()
    for err in errors:
        loc = err.get("loc", ())
        field = loc[1] if len(loc) > 1 else None
        code = FIELD_ERROR_CODES.get(field)
        if code is not None:
            return _error(request, 400, f"{field}: {err.get('msg', 'invalid value')}", code)

    fields = ", ".join(
        ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        for err in errors
    )
    return _error(request, 400, f"Invalid request: {fields or 'malformed body'}", "VALIDATION_ERROR")


async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("%s %s store failure: %s", request.method, request.url.path, type(exc).__name__)
    return _error(request, 503, "Record store unavailable", "STORE_ERROR")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s unhandled error", request.method, request.url.path)
    return _error(request, 500, "Internal server error", "INTERNAL_ERROR")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
