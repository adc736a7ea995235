# flightsim/api/envelope.py
"""
Response envelopes and error translation.

Every response body is ``{"success": true, "data": ...}`` or
``{"success": false, "error": "..."}``.
"""

from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import ScenarioEngineError
from ..logging import get_api_logger

logger = get_api_logger()


class RequestModel(BaseModel):
    """Request body accepting camelCase aliases or snake_case field names."""

    model_config = ConfigDict(populate_by_name=True)


def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _describe_validation(exc: RequestValidationError) -> str:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(problems) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """Map engine errors, request validation and unexpected failures onto envelopes."""

    @app.exception_handler(ScenarioEngineError)
    async def engine_error_handler(request: Request, exc: ScenarioEngineError):
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                path=request.url.path,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        else:
            logger.info(
                "request_rejected",
                path=request.url.path,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        return error_response(exc.status_code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(400, _describe_validation(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, error_type=type(exc).__name__)
        return error_response(500, "Internal server error")
