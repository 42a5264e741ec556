# ================================
# MIDDLEWARE (core/middleware.py)
# ================================

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import time
import uuid
import logging

logger = logging.getLogger(__name__)

class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware für Request-ID und Timing"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        # Request ID für Logging
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)

        # Response Headers
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Request-ID"] = request_id

        return response

class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware für Request-Logging"""

    SKIP_PATHS = ("/health", "/ready")

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        # Pre-request logging
        await self._log_request(request)

        response = await call_next(request)

        # Post-request logging
        await self._log_response(request, response)

        return response

    async def _log_request(self, request: Request):
        """Loggt eingehende Requests"""
        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "method": request.method,
                "path": request.url.path,
                "query_params": str(request.query_params),
                "user_agent": request.headers.get("User-Agent"),
                "ip_address": request.client.host if request.client else None
            }
        )

    async def _log_response(self, request: Request, response: Response):
        """Loggt ausgehende Responses"""
        logger.info(
            f"Response: {response.status_code} {request.method} {request.url.path}",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "status_code": response.status_code,
                "process_time": response.headers.get("X-Process-Time")
            }
        )

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware für Security Headers"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Security Headers hinzufügen
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # HSTS für HTTPS
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
