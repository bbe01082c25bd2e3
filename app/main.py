from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.api.v1.router import api_router
from app.database import async_session_factory
from app.database_init import startup_initialization
from app.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables when DB_AUTO_CREATE is set, seed membership tiers
    - Start background scheduler (monthly invoicing, claim escalation, task assignment)
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await startup_initialization()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()
        logger.info("Background scheduler started")

    yield

    # Shutdown
    shutdown_scheduler()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Bookings", "description": "Pallet and area-rental bookings, time slots and on-behalf approvals"},
    {"name": "Pricing & Capacity", "description": "Price quotes, capacity checks and membership tiers"},
    {"name": "Invoices", "description": "Booking, monthly, annual and service-order invoices"},
    {"name": "Payments", "description": "Invoice payments, credit balance and refunds (Razorpay)"},
    {"name": "Warehouse Tasks", "description": "Task creation and workload-balanced assignment"},
    {"name": "Claims", "description": "Damage and loss claims"},
]

API_DESCRIPTION = """
## Warehouse Marketplace API

Customers rent pallet slots or whole floor areas in partner warehouses.

### Authentication

All endpoints require a bearer token issued by the identity platform.
The `sub` claim is the user id; `role` is one of `customer`,
`warehouse_staff` or `admin`.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Validation failed |
| 401 | Invalid/expired token |
| 403 | Not allowed to act on this resource |
| 404 | Resource doesn't exist |
| 409 | Wrong status for this operation, or not enough capacity |
| 502 | Payment gateway failure |
"""

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
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


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled errors and return a JSON 500."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    content = {
        "error": str(exc) if settings.DEBUG else "Internal server error",
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    response = JSONResponse(status_code=500, content=content)

    # Error responses skip the CORS middleware
    origin = request.headers.get("origin", "")
    if origin in settings.cors_origins_list or "*" in settings.cors_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"

    return response


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        },
        "jobs": get_job_status(),
    }

    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
            health_status["checks"]["database"] = "connected"
    except SQLAlchemyError as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
