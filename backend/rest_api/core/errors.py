"""
Last-resort exception handler.

``AppException`` subclasses are ``HTTPException``s and are rendered by
FastAPI itself; anything else becomes a generic 500 with the traceback
logged and the correlation id echoed back.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.config.logging import rest_api_logger as logger
from shared.infrastructure.correlation import get_request_id


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "requestId": getattr(request.state, "request_id", None) or get_request_id()},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(Exception, unhandled_exception_handler)
