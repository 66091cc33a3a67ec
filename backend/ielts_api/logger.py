from __future__ import annotations
import logging
import time

from fastapi import Request

from .settings import settings

logger = logging.getLogger("ielts_api.requests")


def configure_logging() -> None:
	logging.basicConfig(
		level=getattr(logging, settings.log_level.upper(), logging.INFO),
		format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
	)


async def log_requests(request: Request, call_next):
	start = time.perf_counter()
	logger.debug("Incoming request %s %s from %s", request.method, request.url.path, request.client.host if request.client else "-")
	response = await call_next(request)
	duration_ms = (time.perf_counter() - start) * 1000
	logger.debug("Response %s %s -> %s (%.1fms)", request.method, request.url.path, response.status_code, duration_ms)
	return response
