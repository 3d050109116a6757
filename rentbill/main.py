from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from rentbill.config import settings
from rentbill.api.v1.router import api_router
from rentbill.core.errors import (
    AlreadyPaidError,
    BillingError,
    BillingValidationError,
    DuplicateBillError,
    NotFoundError,
)
from rentbill.database import init_db, async_session_factory
from rentbill.jobs.scheduler import get_job_status, start_scheduler, shutdown_scheduler
from rentbill.services.bill_dispatcher import get_bill_dispatcher

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    BillingValidationError: 400,
    NotFoundError: 404,
    DuplicateBillError: 409,
    AlreadyPaidError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables when missing
    - Start the document/notification dispatcher
    - Start the monthly billing scheduler
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    dispatcher = get_bill_dispatcher()
    dispatcher.start()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    yield

    # Shutdown
    shutdown_scheduler()
    await dispatcher.stop()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Buildings", "description": "Buildings that group rooms"},
    {"name": "Rooms", "description": "Rooms, tenant assignment and occupancy preview"},
    {"name": "Tenants", "description": "Tenant records, move-out and payment ledger"},
    {"name": "Bills", "description": "Monthly bills: create, update, pay, documents and batch runs"},
    {"name": "Payments", "description": "Razorpay orders, checkout verification and webhooks"},
    {"name": "Health", "description": "Service health"},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Monthly rent billing for rooms and tenants.",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError):
    """Map service errors to HTTP responses."""
    status_code = 500
    for error_class, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_class):
            status_code = code
            break

    if status_code == 500:
        logger.error(f"Unhandled billing error on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        },
        headers={"X-Error-Code": exc.error_code},
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    health_status["checks"]["scheduled_jobs"] = get_job_status()

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
