"""
Response hardening and request body checks.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.config.settings import settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Headers for a JSON-only API consumed by browser front ends."""

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        # The customer app scans table QR codes with the camera
        "Permissions-Policy": "geolocation=(), microphone=(), camera=(self)",
        "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    }
    HSTS = "max-age=31536000; includeSubDomains"

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.update(self.HEADERS)
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = self.HSTS
        if "server" in response.headers:
            del response.headers["server"]
        return response


class ContentTypeValidationMiddleware(BaseHTTPMiddleware):
    """
    415 for POST/PUT/PATCH bodies that are declared as something other
    than JSON.

    The payment webhook is exempt: its signature covers the raw bytes,
    whatever content type the gateway sends.
    """

    EXEMPT_PREFIXES = ("/api/payment/webhook", "/api/health")

    async def dispatch(self, request: Request, call_next):
        content_type = request.headers.get("content-type", "")
        if (
            request.method in ("POST", "PUT", "PATCH")
            and content_type
            and not content_type.startswith("application/json")
            and not request.url.path.startswith(self.EXEMPT_PREFIXES)
        ):
            return JSONResponse(
                status_code=415,
                content={"detail": "Unsupported Media Type. Use application/json"},
            )
        return await call_next(request)


def register_middlewares(app: FastAPI) -> None:
    # Last added runs first: body checks happen before headers are decorated
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(ContentTypeValidationMiddleware)
