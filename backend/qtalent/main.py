# backend/qtalent/main.py

import asyncio
import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as SA_TimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models  # noqa: F401  (registers all tables on Base.metadata)
from .api import (
    api_booking,
    api_invoice,
    api_notification,
    api_payment,
    api_webhooks,
)
from .core.config import settings
from .core.observability import setup_logging
from .database import Base, SessionLocal, engine
from .services.ops_scheduler import run_maintenance
from .utils.errors import BookingError
from .utils.notifications import alert_scheduler_failure
from .utils.status_logger import register_status_listeners

setup_logging()
logger = logging.getLogger(__name__)

register_status_listeners()

# Development convenience; production schemas are managed by Alembic.
if os.getenv("SKIP_DB_BOOTSTRAP", "0").lower() not in {"1", "true", "yes"}:
    Base.metadata.create_all(bind=engine)

app = FastAPI(title="Talent Booking API", default_response_class=ORJSONResponse)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def catch_exceptions(request: Request, call_next):
    """Return JSON responses for HTTP errors and log them."""
    try:
        response = await call_next(request)
    except StarletteHTTPException as exc:  # return the original status and detail
        logger.error(
            "HTTP error %s at %s: %s", exc.status_code, request.url.path, exc.detail
        )
        response = ORJSONResponse(
            status_code=exc.status_code, content={"detail": exc.detail}
        )
    except SA_TimeoutError as exc:  # DB pool timeout -> 503 to reduce retry storms
        logger.error("DB timeout at %s: %s", request.url.path, str(exc))
        response = ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database busy, please retry"},
        )
    except Exception as exc:  # pragma: no cover - generic handler
        logger.exception("Unhandled error: %s", exc)
        response = ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error"},
        )
    return response


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Map domain errors raised by the crud layer to their HTTP status."""
    logger.info(
        "%s at %s: %s %s",
        type(exc).__name__,
        request.url.path,
        exc.message,
        exc.field_errors,
    )
    return ORJSONResponse(
        status_code=exc.http_status,
        content={"detail": {"message": exc.message, "field_errors": exc.field_errors}},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return validation errors with details and log them for debugging."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    field_errors = {
        ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body": err.get("msg", "invalid")
        for err in errors
    }
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": {"message": "Validation error", "field_errors": field_errors}},
    )


@app.get("/healthz", tags=["health"])
async def healthz():
    """Readiness probe: one DB round trip."""
    try:
        await asyncio.to_thread(_db_ping_sync)
    except Exception as exc:
        logger.warning("Health check DB ping failed: %s", exc)
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "reason": "db_unavailable"},
        )
    return {"status": "ok"}


api_prefix = settings.API_V1_STR  # usually "/api/v1"

app.include_router(api_booking.router, prefix=f"{api_prefix}/bookings", tags=["bookings"])
app.include_router(api_invoice.router, prefix=f"{api_prefix}/invoices", tags=["invoices"])
app.include_router(api_payment.router, prefix=f"{api_prefix}/payments", tags=["payments"])
app.include_router(
    api_notification.router, prefix=f"{api_prefix}/notifications", tags=["notifications"]
)
# Provider webhooks are unversioned; their URLs are registered with Stripe/PayPal.
app.include_router(api_webhooks.router, prefix="/webhooks", tags=["webhooks"])


def _db_ping_sync() -> None:
    with SessionLocal() as db:
        db.execute(text("SELECT 1"))


async def ops_maintenance_loop() -> None:
    """Periodic sweeps: complete past bookings and expire stale invoices."""
    while True:
        await asyncio.sleep(settings.MAINTENANCE_INTERVAL_SECONDS)
        # Retry with backoff on transient DB failures
        delay = 5
        max_retries = 5
        for attempt in range(max_retries):
            try:
                summary = await asyncio.to_thread(run_maintenance)
                logger.info("Maintenance summary: %s", summary)
                break
            except OperationalError as exc:  # pragma: no cover - transient DB outage
                alert_scheduler_failure(exc)
                if attempt < max_retries - 1:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, 60)
                    continue
                # Give up for this cycle; try again next tick
                break
            except Exception as exc:  # pragma: no cover - continue running
                alert_scheduler_failure(exc)
                break


@app.on_event("startup")
async def start_background_tasks() -> None:
    """Launch background maintenance tasks."""
    if not settings.MAINTENANCE_ENABLED or os.getenv("PYTEST_RUN") == "1":
        return
    app.state.maintenance_task = asyncio.create_task(ops_maintenance_loop())


@app.on_event("shutdown")
async def stop_background_tasks() -> None:
    """Cancel the maintenance loop started at startup."""
    task = getattr(app.state, "maintenance_task", None)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        app.state.maintenance_task = None
