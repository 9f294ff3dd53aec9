"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, public, partner, guide, customer, admin
from api.errors import register_exception_handlers
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import dispose_engine
from core.logging import setup_logging
from jobs.scheduler import MaintenanceScheduler
from schemas.api import ErrorResponse
from services.rate_limiter import RateLimitMiddleware
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Aero Travel Backend API",
    description="Booking, guide operations, loyalty and partner portal backend",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409, 429, 500)}
)

# Added last so it runs first and the rate limiter sees the request id
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestContextMiddleware)

register_exception_handlers(app)

# Initialize Scheduler
scheduler = MaintenanceScheduler()
app.state.scheduler = scheduler


# Include routers
app.include_router(health.router)
app.include_router(public.router)
app.include_router(partner.router)
app.include_router(guide.router)
app.include_router(customer.router)
app.include_router(admin.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Aero Travel Backend API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Aero Travel Backend API")
    scheduler.stop()
    await dispose_engine()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Aero Travel Backend API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "public": "/api/settings/public",
            "partner": "/api/partner/bookings",
            "guide": "/api/guide",
            "customer": "/api/customer",
            "admin": "/api/admin"
        }
    }
