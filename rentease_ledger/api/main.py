"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from rentease_ledger.api.errors import register_exception_handlers
from rentease_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from rentease_ledger.api.v1 import bills, budgets, expenses, operations, rent_plans, rewards, webhooks
from rentease_ledger.infrastructure.observability.logging import setup_logging
from rentease_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="RentEase Ledger",
        description="Rent plan, bill payment and rewards lifecycle service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(rent_plans.router, prefix="/v1", tags=["rent-plans"])
    app.include_router(bills.router, prefix="/v1", tags=["bills"])
    app.include_router(rewards.router, prefix="/v1", tags=["rewards"])
    app.include_router(budgets.router, prefix="/v1", tags=["budgets"])
    app.include_router(expenses.router, prefix="/v1", tags=["expenses"])
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])
    app.include_router(operations.router, prefix="/v1", tags=["operations"])

    return app


app = create_app()
