from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Bookings & Lifecycle
    bookings,
    # Pricing, Capacity & Membership
    pricing,
    # Billing
    invoices,
    payments,
    # Operations
    tasks,
    claims,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Bookings ====================
api_router.include_router(
    bookings.router,
    prefix="/bookings",
    tags=["Bookings"]
)

# ==================== Pricing, Capacity & Membership ====================
api_router.include_router(
    pricing.router,
    tags=["Pricing & Capacity"]
)

# ==================== Billing ====================
api_router.include_router(
    invoices.router,
    prefix="/invoices",
    tags=["Invoices"]
)
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)

# ==================== Operations ====================
api_router.include_router(
    tasks.router,
    prefix="/tasks",
    tags=["Warehouse Tasks"]
)
api_router.include_router(
    claims.router,
    prefix="/claims",
    tags=["Claims"]
)
