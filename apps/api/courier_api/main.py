"""COURIER API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from courier_api.cleanup.lock import sweep_lock
from courier_api.cleanup.scheduler import SweepScheduler
from courier_api.cleanup.sweeper import SweepResult, run_cleanup
from courier_api.db.session import SessionLocal, init_db
from courier_api.errors import (
    CourierError,
    PermissionDenied,
    ThreadNotFound,
    TransientIOError,
    ValidationError,
    WriteNotTracked,
)
from courier_api.middleware.correlation import CorrelationIdFilter, CorrelationIDMiddleware
from courier_api.routes import cleanup, messages
from courier_api.settings import get_settings

settings = get_settings()

# Configure logging
_handler = logging.StreamHandler(sys.stdout)
_handler.addFilter(CorrelationIdFilter())
logging.basicConfig(
    level=settings.log_level,
    format=(
        '{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", '
        '"module": "%(name)s", "correlation_id": "%(correlation_id)s"}'
    ),
    handlers=[_handler],
)
logger = logging.getLogger(__name__)


def scheduled_sweep(**kwargs) -> SweepResult:
    """One sweep on its own database session."""
    db = SessionLocal()
    try:
        return run_cleanup(db, **kwargs)
    finally:
        db.close()


sweep_scheduler = SweepScheduler(
    scheduled_sweep,
    interval_seconds=settings.cleanup_interval_minutes * 60,
    startup_delay_seconds=settings.cleanup_startup_delay_seconds,
    lock_factory=sweep_lock if settings.cleanup_shared_lock else None,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting COURIER API...")
    try:
        settings.validate_production_settings()
        init_db()
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    logger.info(
        f"Environment: {settings.environment}, storage: {settings.storage_provider}, "
        f"ledger: {settings.ledger_provider}, cleanup every "
        f"{settings.cleanup_interval_minutes} minutes"
    )
    if settings.cleanup_enabled:
        sweep_scheduler.start()

    yield

    logger.info("Shutting down COURIER API...")
    sweep_scheduler.stop(timeout=10)


app = FastAPI(
    title="COURIER API",
    description="Ledger-reconciled shared thread logs on object storage",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.sweep_scheduler = sweep_scheduler

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

app.include_router(messages.router)
app.include_router(cleanup.router)


@app.exception_handler(CourierError)
async def courier_error_handler(request: Request, exc: CourierError):
    """Map the error taxonomy onto HTTP responses."""
    headers = None
    if isinstance(exc, TransientIOError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        headers = {"Retry-After": str(exc.retry_after_seconds)}
        logger.warning(f"Transient failure: {exc.message}")
    elif isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
        logger.info(f"Rejected request: {exc.message}")
    elif isinstance(exc, (ThreadNotFound, WriteNotTracked)):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PermissionDenied):
        status_code = status.HTTP_403_FORBIDDEN
        logger.info(f"Denied request: {exc.message}")
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        logger.error(f"Unhandled courier error: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"success": False, **exc.to_dict()},
        headers=headers,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "courier-api",
        "version": "0.1.0",
    }


@app.get("/ready")
def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory
    from sqlalchemy import text

    from courier_api.db.session import alembic_config
    from courier_api.storage.service import get_object_store

    checks = {
        "database": False,
        "migrations": False,
        "object_storage": False,
        "cleanup_scheduler": sweep_scheduler.is_running,
    }

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True

        current = MigrationContext.configure(db.connection()).get_current_revision()
        head = ScriptDirectory.from_config(alembic_config()).get_current_head()
        checks["migrations"] = current == head
        if not checks["migrations"]:
            logger.warning(f"Database at revision {current}, expected {head}")
    except Exception as e:
        logger.warning(f"Database readiness check failed: {e}")
    finally:
        db.close()

    try:
        get_object_store().list("threads/")
        checks["object_storage"] = True
    except Exception as e:
        logger.warning(f"Object storage readiness check failed: {e}")

    ready = checks["database"] and checks["migrations"] and checks["object_storage"]
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
