"""FastAPI exception handlers for the dev server."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from duet.errors.exceptions import BackendError, DuetError

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    "INVALID_INPUT": 400,
    "NOT_FOUND": 404,
    "NOT_RETRYABLE": 409,
}


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app."""

    @app.exception_handler(DuetError)
    async def duet_error_handler(request: Request, exc: DuetError):
        if isinstance(exc, BackendError) and exc.status_code:
            status_code = exc.status_code
        else:
            status_code = _STATUS_BY_CODE.get(exc.code, 500)
        if status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.code},
        )
