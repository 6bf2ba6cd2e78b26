"""
Middleware for dirserve
"""

import logging
import time
from typing import Callable, Optional
from fastapi import FastAPI, Request, Response, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .models import ApiResponse, ResponseCode, SECURITY_HEADERS
from .utils import get_client_ip, format_duration

logger = logging.getLogger(__name__)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Access logging middleware"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        client_ip = get_client_ip(request)
        metrics = request.app.state.metrics

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"Request failed: {request.method} {request.url.path} - {e}")
            self._log_access(request, None, duration, client_ip, error=str(e))
            metrics.increment_errors()
            raise

        duration = time.time() - start_time
        self._log_access(request, response, duration, client_ip)
        metrics.record_response(response.status_code, duration)
        return response

    def _log_access(
        self,
        request: Request,
        response: Optional[Response],
        duration: float,
        client_ip: str,
        error: Optional[str] = None
    ):
        """Log access information"""

        status_code = response.status_code if response else 500
        content_length = response.headers.get("content-length", "-") if response else "-"

        message = (
            f"ACCESS {request.method} {request.url.path} {status_code} "
            f"{content_length} {format_duration(duration)} ip={client_ip}"
        )
        if error:
            message += f" error={error}"

        # Log level based on status code
        if status_code >= 500:
            logger.error(message)
        elif status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Global exception handler middleware"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except HTTPException:
            # Let FastAPI handle HTTP exceptions
            raise

        except Exception as e:
            logger.exception(f"Unhandled exception: {e}")
            request.app.state.metrics.increment_errors()

            error_response = ApiResponse(
                code=ResponseCode.INTERNAL_ERROR.value,
                msg="Internal server error",
                data=None
            )

            return JSONResponse(
                status_code=500,
                content=error_response.to_dict()
            )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses that do not set them"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            if name not in response.headers:
                response.headers[name] = value
        return response


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Request metrics collection middleware"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with request.app.state.metrics.request_context(request.method):
            return await call_next(request)


def setup_middleware(app: FastAPI):
    """Setup all middleware for the application"""

    # Added innermost first
    app.add_middleware(ExceptionHandlerMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestMetricsMiddleware)

    logger.info("Middleware setup complete")
