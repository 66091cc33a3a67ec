"""JSON envelopes shared by every endpoint.

Success bodies are ``{success: true, message, data}``. Errors are
``{success: false, message, timestamp}`` with ``fullError`` added in
development.
"""
from __future__ import annotations
import logging
import traceback
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .settings import settings

logger = logging.getLogger(__name__)


def success(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
	return JSONResponse(
		status_code=status_code,
		content=jsonable_encoder({"success": True, "message": message, "data": data}),
	)


def error(message: str = "Something went wrong", status_code: int = 500, exc: Exception | None = None) -> JSONResponse:
	body: dict[str, Any] = {
		"success": False,
		"message": message,
		"timestamp": datetime.now(timezone.utc).isoformat(),
	}
	if exc is not None and settings.is_development():
		body["fullError"] = {
			"name": type(exc).__name__,
			"message": str(exc),
			"stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
		}
	return JSONResponse(status_code=status_code, content=body)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
	return error(str(exc.detail), exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
	parts = []
	for err in exc.errors():
		loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
		parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
	return error("; ".join(parts) or "Invalid request", 400)


async def unhandled_exception_handler(request: Request, exc: Exception):
	logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
	return error("Internal server error", 500, exc)
