from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..domain.errors import (
    AccessDenied,
    InvalidArgument,
    NotFound,
    SourceUnavailable,
    StoreUnavailable,
    TranscodeError,
)

logger = structlog.get_logger(__name__)

_STATUS_BY_ERROR: dict[type[TranscodeError], int] = {
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    AccessDenied: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    SourceUnavailable: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: TranscodeError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TranscodeError)
    async def _transcode_error(request: Request, exc: TranscodeError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("api.request_failed", path=request.url.path, error=exc.code, detail=exc.message)
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code, "detail": exc.message},
        )
