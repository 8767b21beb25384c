# legcast/main.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from legcast.routers.health import router as health_router
from legcast.routers.trips import router as trips_router
from legcast.routers.training import router as training_router
from legcast.routers.versions import router as versions_router
from legcast.routers.models import router as models_router
from legcast.routers.predictions import router as predictions_router
from legcast.db.session import get_engine
from legcast.db.base import Base
from legcast.exceptions import LegcastError
from legcast.observability.logging import configure_logging
from legcast.observability.middleware import (
    domain_error_handler,
    register_request_middleware,
    unhandled_exception_handler,
)
from legcast.observability.metrics import router as observability_router
from legcast.scheduler.setup import init_scheduler, shutdown_scheduler
from legcast.config import get_settings

configure_logging()

DEV_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Legcast", version="0.3.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEV_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=86400,
    )

    if settings.TRUSTED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.TRUSTED_HOSTS)

    register_request_middleware(app)
    app.add_exception_handler(LegcastError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Ensure tables exist in dev so a brand-new database does not 500
    @app.on_event("startup")
    def _ensure_tables() -> None:
        Base.metadata.create_all(bind=get_engine())

    @app.on_event("startup")
    async def _start_scheduler() -> None:
        await init_scheduler(app)

    @app.on_event("shutdown")
    async def _stop_scheduler() -> None:
        await shutdown_scheduler()

    app.include_router(health_router)
    app.include_router(observability_router)
    app.include_router(trips_router)
    app.include_router(training_router)
    app.include_router(versions_router)
    app.include_router(models_router)
    app.include_router(predictions_router)

    return app


app = create_app()
