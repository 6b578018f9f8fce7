"""Exception handlers for the FastAPI app"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.errors import (
    ConfigurationError,
    ConflictError,
    InvalidRecordIdError,
    NotFoundError,
    PartialFailure,
    StorageError,
    StorageExhaustedError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[StorageError], int]] = [
    (InvalidRecordIdError, 400),
    (ConfigurationError, 503),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StorageExhaustedError, 507),
    (UpstreamError, 502),
]


def _validation_body(exc: RequestValidationError) -> dict:
    errors = []
    for err in exc.errors():
        detail = {
            "field": ".".join(str(loc) for loc in err["loc"] if loc != "body"),
            "message": err["msg"],
        }
        if err.get("input") is not None:
            detail["value"] = repr(err["input"])
        errors.append(detail)
    return {"detail": "Validation failed", "errors": errors}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(status_code=400, content=_validation_body(exc))

    @app.exception_handler(PartialFailure)
    async def partial_failure_handler(request: Request, exc: PartialFailure) -> JSONResponse:
        return JSONResponse(status_code=207, content=exc.to_response_body())

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        status = 500
        for error_type, code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                status = code
                break
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        if isinstance(exc, UpstreamError):
            # Remote status and message stay in the log only
            return JSONResponse(status_code=status, content={"error": "Remote storage request failed"})
        return JSONResponse(status_code=status, content={"error": str(exc)})
