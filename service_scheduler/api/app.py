"""FastAPI application factory."""

from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from service_scheduler.api.handlers import (
    RequestIdMiddleware,
    scheduling_error_handler,
    validation_exception_handler,
)
from service_scheduler.api.routes import router
from service_scheduler.config import settings
from service_scheduler.engine import SchedulingEngine
from service_scheduler.errors import SchedulingError
from service_scheduler.logging_context import get_request_logger

logger = get_request_logger(__name__)


def create_app(engine: Optional[SchedulingEngine] = None) -> FastAPI:
    """Build the API around ``engine`` (a fresh seeded engine by default)."""
    app = FastAPI(
        title="EV Service Scheduler API",
        description="Appointment scheduling and workflow for EV service centers",
        version="1.0.0",
    )
    app.state.engine = engine or SchedulingEngine()

    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(router, prefix="/api")

    @app.get("/health")
    def health():
        return {"status": "healthy", "service": settings.service_name}

    logger.info("API ready for '%s'", settings.service_name)
    return app
