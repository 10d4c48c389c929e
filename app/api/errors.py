"""Map service errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.errors import ConflictError, NotFoundError, ServiceError, StoreUnavailable, ValidationError

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[ServiceError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    StoreUnavailable: 503,
}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status_code = next((code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
