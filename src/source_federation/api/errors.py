"""Mapping of domain errors onto HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from source_federation.exceptions import (
    ConfigInUse,
    ConfigNotFound,
    ConfigValidationError,
    FederationError,
    HistoryRecordNotFound,
    InvalidComposition,
    InvalidFieldSelection,
    InvalidQuery,
    SourceUnresolved,
)
from source_federation.observability.logger import get_logger

logger = get_logger("api_errors")


def _detail(exc: FederationError) -> dict:
    detail: dict = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, ConfigInUse):
        detail["referenced_by"] = exc.referenced_by
    elif isinstance(exc, InvalidFieldSelection):
        detail["fields"] = exc.fields
    elif isinstance(exc, InvalidComposition):
        detail["composition"] = exc.composition
        detail["member"] = exc.member
    elif isinstance(exc, (ConfigNotFound, SourceUnresolved)):
        detail["name"] = exc.name
    return detail


def _status_for(exc: FederationError) -> int:
    if isinstance(exc, (ConfigNotFound, HistoryRecordNotFound)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConfigInUse):
        return status.HTTP_409_CONFLICT
    if isinstance(
        exc,
        (
            ConfigValidationError,
            SourceUnresolved,
            InvalidComposition,
            InvalidFieldSelection,
            InvalidQuery,
        ),
    ):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def federation_error_handler(request: Request, exc: FederationError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("request_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status_code, content={"detail": _detail(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FederationError, federation_error_handler)
