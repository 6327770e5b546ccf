"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from agenda.core.config import settings
from agenda.db.session import engine
from agenda.services.errors import (
    AppointmentNotEditableError,
    AppointmentNotFoundError,
    CalendarSyncError,
    ConcurrentModificationError,
    ConflictError,
    CustomerNotFoundError,
    InvalidAppointmentError,
    InvalidTransitionError,
    PersistenceError,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Don't send PII to Sentry
    )
    logging.info("Sentry initialized for error tracking")


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Agenda API",
    description="Appointment scheduling with Google Calendar mirroring",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Owner-Id"],
)


# ============================================================================
# Error Mapping
# ============================================================================

def _conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "conflicting_ids": [str(i) for i in exc.conflicting_ids],
        },
    )


def _bad_request_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def _concurrent_modification_handler(
    request: Request, exc: ConcurrentModificationError
) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def _persistence_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def _calendar_sync_handler(request: Request, exc: CalendarSyncError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "error_kind": exc.kind.value if exc.kind else None},
    )


app.add_exception_handler(ConflictError, _conflict_handler)
app.add_exception_handler(InvalidTransitionError, _bad_request_handler)
app.add_exception_handler(InvalidAppointmentError, _bad_request_handler)
app.add_exception_handler(AppointmentNotEditableError, _bad_request_handler)
app.add_exception_handler(AppointmentNotFoundError, _not_found_handler)
app.add_exception_handler(CustomerNotFoundError, _not_found_handler)
app.add_exception_handler(ConcurrentModificationError, _concurrent_modification_handler)
app.add_exception_handler(PersistenceError, _persistence_handler)
app.add_exception_handler(CalendarSyncError, _calendar_sync_handler)


# ============================================================================
# Routers
# ============================================================================

from agenda.routers import (  # noqa: E402
    appointments_router,
    calendar_router,
    customers_router,
    income_router,
    integrations_router,
    settings_router,
)

app.include_router(appointments_router, prefix="/appointments", tags=["appointments"])
app.include_router(calendar_router, prefix="/calendar", tags=["calendar"])
app.include_router(customers_router, prefix="/customers", tags=["customers"])
app.include_router(settings_router, prefix="/settings", tags=["settings"])
app.include_router(income_router, prefix="/income", tags=["income"])
app.include_router(integrations_router, prefix="/integrations", tags=["integrations"])


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
