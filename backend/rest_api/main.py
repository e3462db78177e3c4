"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI

from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from rest_api.core.cors import configure_cors
from rest_api.core.errors import register_exception_handlers
from rest_api.core.lifespan import lifespan
from rest_api.core.middlewares import register_middlewares
from rest_api.routers.orders import router as orders_router
from rest_api.routers.payment import router as payment_router
from rest_api.routers.public import health_router, restaurants_router


app = FastAPI(
    title="QuickServe Orders API",
    description="Order intake, status lifecycle and split-payment settlement",
    version="1.0.0",
    lifespan=lifespan,
)

# =============================================================================
# Middleware & error handling
# =============================================================================

register_middlewares(app)
configure_cors(app)
# Outermost so every log line of the request carries the id
app.add_middleware(CorrelationIdMiddleware)
register_exception_handlers(app)

# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(restaurants_router)
app.include_router(orders_router)
app.include_router(payment_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rest_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=settings.debug,
    )
