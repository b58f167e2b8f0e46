"""Exception handlers that render every error inside the response envelope."""

import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..exceptions import ErrorCode, SyncRulesException

logger = logging.getLogger(__name__)


async def syncrules_exception_handler(request: Request, exc: SyncRulesException) -> JSONResponse:
    """
    Handle domain exceptions and return structured JSON responses.

    Client errors are logged at WARNING, server errors at ERROR.

    Args:
        request: FastAPI request object
        exc: SyncRulesException instance

    Returns:
        JSONResponse with the error envelope
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"SyncRulesException: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters use the same envelope as domain errors."""
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
    logger.warning(
        "Request validation failed",
        extra={"path": request.url.path, "method": request.method, "field": field},
    )
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.VALIDATION_ERROR.value,
                "message": first.get("msg", "Invalid request"),
                "details": {"field": field, "errors": errors},
            },
        },
    )
