"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nudge.domain.errors import NudgeError
from nudge.obs import logging as obs_logging


def get_request_id(request: Request, default: str = "unknown") -> str:
    rid = getattr(request.state, "request_id", None) or obs_logging.current_request_id()
    return rid or default


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": get_request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {"detail": "validation_error", "errors": exc.errors(), "request_id": get_request_id(request)}
        return JSONResponse(status_code=422, content=jsonable_encoder(payload))

    @app.exception_handler(NudgeError)
    async def domain_exc_handler(request: Request, exc: NudgeError):  # type: ignore[override]
        payload = {"detail": exc.reason, "request_id": get_request_id(request)}
        return JSONResponse(status_code=400, content=payload)
