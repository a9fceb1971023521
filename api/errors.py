"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.errors import (
    BillingError,
    BusinessRuleError,
    NotFoundError,
    StateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific family first
_STATUS_BY_FAMILY = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (StateError, 409),
    (BusinessRuleError, 422),
)


def status_for(exc: BillingError) -> int:
    """HTTP status for a billing error, by family."""
    for family, status in _STATUS_BY_FAMILY:
        if isinstance(exc, family):
            return status
    return 400


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(BillingError)
    async def billing_error_handler(request: Request, exc: BillingError):
        status = status_for(exc)
        logger.info("%s %s -> %d %s: %s", request.method, request.url.path, status, exc.code, exc)
        return JSONResponse(
            status_code=status,
            content=error_response(exc.code, str(exc), _request_id(request)).model_dump(mode="json"),
        )

    @app.exception_handler(PydanticValidationError)
    async def model_error_handler(request: Request, exc: PydanticValidationError):
        # Action payloads are validated inside handlers, not by FastAPI
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors(include_url=False)),
                _request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.INVALID_REQUEST, str(exc), _request_id(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
                _request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                _request_id(request),
            ).model_dump(mode="json"),
        )
