"""HTTP middleware: request ids, engine error rendering and request timing."""

import logging
import time
import uuid
from typing import Callable, Dict, Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import WorkflowEngineError, create_error_response
from .logging import REDACTED, clear_logging_context, get_logger, log_with_context, set_logging_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})


def redact_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy of ``headers`` with credentials replaced by a mask."""
    return {key: REDACTED if key.lower() in SENSITIVE_HEADERS else value for key, value in headers.items()}


def _elapsed(started: float) -> float:
    return round(time.perf_counter() - started, 3)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and renders engine errors as JSON.

    Each :class:`WorkflowEngineError` declares its own ``http_status``; client
    errors are logged at WARNING, server-side ones at ERROR.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()
        set_logging_context(
            request_id=request_id,
            route=f"{request.method} {request.url.path}",
            tenant_id=request.headers.get("X-Tenant-Id", "unknown"),
        )

        try:
            response = await call_next(request)
        except WorkflowEngineError as e:
            status_code = self._get_status_code_for_error(e)
            log_with_context(
                logger,
                logging.WARNING if status_code < 500 else logging.ERROR,
                f"Request failed with {e.error_code}",
                status_code=status_code,
                duration=_elapsed(started),
                category=e.category.value,
            )
            content = create_error_response(e)
            content["request_id"] = request_id
            return JSONResponse(status_code=status_code, content=content,
                                headers={REQUEST_ID_HEADER: request_id})
        except Exception as e:
            logger.error(f"Unhandled {type(e).__name__} after {_elapsed(started)}s", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": "An unexpected error occurred",
                    "request_id": request_id,
                },
                headers={REQUEST_ID_HEADER: request_id},
            )
        else:
            logger.info(f"{response.status_code} in {_elapsed(started)}s")
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_logging_context()

    def _get_status_code_for_error(self, error: WorkflowEngineError) -> int:
        return getattr(error, "http_status", None) or 500


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Debug-level request details. Bodies are never logged since they may carry tokens."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        logger.debug(
            f"Request {request.method} {request.url.path} "
            f"headers={redact_headers(request.headers)} query={dict(request.query_params)}"
        )
        return await call_next(request)


class PerformanceMonitoringMiddleware(BaseHTTPMiddleware):
    """Adds ``X-Response-Time`` and warns about slow requests."""

    def __init__(self, app, slow_request_threshold: float = 5.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        duration = _elapsed(started)

        if duration > self.slow_request_threshold:
            logger.warning(
                f"Slow request {request.method} {request.url.path}: {duration}s "
                f"(threshold {self.slow_request_threshold}s)"
            )
        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response
