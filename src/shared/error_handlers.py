"""HTTP error mapping.

Every error response carries a machine-readable ``kind`` so clients can
branch on it without parsing messages.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from shared.errors import CheckoutError

logger = structlog.get_logger(__name__)


def _message(exc: Exception):
    return getattr(exc, "messages", None) or str(exc)


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"kind": "validation_error", "message": "Invalid request", "errors": exc.messages},
    )


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"kind": "not_found", "message": _message(exc)})


async def _invalid_operation(request: Request, exc: InvalidOperationError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"kind": "invalid_operation", "message": _message(exc)})


async def _checkout_error(request: Request, exc: CheckoutError) -> JSONResponse:
    logger.info("Checkout error", kind=exc.kind, path=request.url.path, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    """Install Protean's handlers, then override them with kind-bearing bodies."""
    register_exception_handlers(app)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(InvalidOperationError, _invalid_operation)
    app.add_exception_handler(CheckoutError, _checkout_error)
