"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from stms_billing.api.middleware import RequestIDMiddleware, MetricsMiddleware
from stms_billing.api.v1 import builties, clients, fleet, payments, reports, trips
from stms_billing.infrastructure.database.models import Base
from stms_billing.infrastructure.database.session import engine
from stms_billing.infrastructure.observability.logging import setup_logging
from stms_billing.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="STMS Billing",
        description="Builty billing, payment reconciliation and receivables service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(clients.router, prefix="/v1", tags=["clients"])
    app.include_router(fleet.router, prefix="/v1", tags=["fleet"])
    app.include_router(trips.router, prefix="/v1", tags=["trips"])
    app.include_router(builties.router, prefix="/v1", tags=["builties"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(reports.router, prefix="/v1", tags=["reports"])

    return app


app = create_app()
