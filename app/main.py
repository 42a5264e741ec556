# ================================
# MAIN APPLICATION (main.py)
# ================================

from datetime import datetime, timezone
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.utils import get_openapi
from contextlib import asynccontextmanager

# Core imports
from app.config import settings
from app.core.exceptions import AppException
from app.schemas.base import ErrorResponse
from app.core.middleware import (
    RequestContextMiddleware,
    AuditMiddleware,
    SecurityHeadersMiddleware
)

# API Routes
from app.api.v1 import availability, pricing, bookings, calendar

import logging
import uvicorn

# ================================
# LOGGING CONFIGURATION
# ================================

logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ================================
# APPLICATION LIFECYCLE
# ================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""

    # Startup
    logger.info(f"Starting {settings.APP_NAME}")
    await startup_tasks()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}")
    await shutdown_tasks()

async def startup_tasks():
    """Tasks to run on application startup"""

    # Check database connection
    await initialize_database()

    # Initialize and start background scheduler
    await initialize_background_scheduler()

async def shutdown_tasks():
    """Tasks to run on application shutdown"""

    # Stop background scheduler
    await stop_background_scheduler()

    # Close database connections
    from app.core.database import engine
    engine.dispose()

    logger.info("Application shutdown complete")

def check_database() -> bool:
    from app.core.database import engine
    from sqlalchemy import text

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        return False

async def initialize_database():
    """Verify the database is reachable, schema is managed by Alembic"""
    if not check_database():
        raise RuntimeError("Database initialization failed")

    logger.info("Database connection established")

async def initialize_background_scheduler():
    """Initialize and start the background task scheduler"""
    try:
        from app.core.scheduler import scheduler, initialize_scheduler

        # Register the calendar sync task
        initialize_scheduler()

        await scheduler.start()

        logger.info("Background scheduler started successfully")

    except Exception as e:
        logger.error(f"Failed to start background scheduler: {e}")
        # Don't raise - bookings work without calendar sync

async def stop_background_scheduler():
    """Stop the background task scheduler"""
    try:
        from app.core.scheduler import scheduler

        await scheduler.stop()

        logger.info("Background scheduler stopped")

    except Exception as e:
        logger.error(f"Error stopping background scheduler: {e}")

# ================================
# FASTAPI APPLICATION
# ================================

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Booking & availability engine for short-term rentals",
    docs_url="/docs" if settings.DEBUG else None,  # Disable docs in production
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan
)

# ================================
# MIDDLEWARE CONFIGURATION
# ================================

# Security Headers
app.add_middleware(SecurityHeadersMiddleware)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"]
)

# Audit Logging
app.add_middleware(AuditMiddleware)

# Request ID (last added runs first)
app.add_middleware(RequestContextMiddleware)

# ================================
# EXCEPTION HANDLERS
# ================================

@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handler für Application-spezifische Exceptions"""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": exc.error_code,
            "request_id": getattr(request.state, "request_id", None),
            **exc.payload()
        }
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handler für Standard HTTP Exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "request_id": getattr(request.state, "request_id", None)
        }
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handler für unbehandelte Exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error" if not settings.DEBUG else str(exc),
            "error_code": "INTERNAL_ERROR",
            "request_id": getattr(request.state, "request_id", None)
        }
    )

# ================================
# HEALTH CHECK ENDPOINTS
# ================================

@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": "1.0.0"
    }

@app.get("/health/detailed", tags=["Health"])
async def detailed_health_check():
    """Detailed health check with dependencies"""
    from app.core.scheduler import scheduler

    health_status = {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {}
    }

    if check_database():
        health_status["checks"]["database"] = "healthy"
    else:
        health_status["checks"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    health_status["checks"]["scheduler"] = "running" if scheduler.running else "stopped"
    health_status["checks"]["calendar_sync"] = scheduler.get_task_status("calendar_sync")

    return health_status

@app.get("/ready", tags=["Health"])
async def readiness_check():
    """Kubernetes readiness probe"""
    if not check_database():
        raise HTTPException(status_code=503, detail="Service not ready")
    return {"status": "ready"}

# ================================
# API ROUTES
# ================================

# Availability and manual blocks
app.include_router(
    availability.router,
    prefix="/api/v1/units",
    tags=["Availability"],
    responses={
        404: {"model": ErrorResponse, "description": "Unit not found"},
        409: {"model": ErrorResponse, "description": "Unit not bookable"}
    }
)

# Price quotes and promo codes
app.include_router(
    pricing.router,
    prefix="/api/v1/pricing",
    tags=["Pricing"],
    responses={
        404: {"description": "Unit or pricing rule not found"},
        422: {"description": "Invalid stay or promo code"}
    }
)

# Booking lifecycle
app.include_router(
    bookings.router,
    prefix="/api/v1/bookings",
    tags=["Bookings"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
        404: {"model": ErrorResponse, "description": "Booking not found"},
        409: {"model": ErrorResponse, "description": "Dates occupied"}
    }
)

# iCal export/import
app.include_router(
    calendar.router,
    prefix="/api/v1/calendar",
    tags=["Calendar Sync"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
        404: {"description": "Calendar sync not found"},
        502: {"model": ErrorResponse, "description": "External calendar error"}
    }
)

# ================================
# ROOT ENDPOINT
# ================================

@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "docs_url": "/docs" if settings.DEBUG else None,
        "health_url": "/health",
        "available_endpoints": {
            "units": "/api/v1/units",
            "pricing": "/api/v1/pricing",
            "bookings": "/api/v1/bookings",
            "calendar": "/api/v1/calendar"
        }
    }

# ================================
# CUSTOM OPENAPI SCHEMA
# ================================

PUBLIC_PATH_PREFIXES = ("/api/v1/calendar/ical/",)

def custom_openapi():
    """Custom OpenAPI schema with security definitions"""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Booking & availability engine for short-term rentals",
        routes=app.routes,
    )

    # Add security schemes
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "JWT Bearer token"
        }
    }

    # Add security to all routes (except public ones)
    for path, path_item in openapi_schema["paths"].items():
        if path in ["/", "/health", "/health/detailed", "/ready"] or path.startswith(PUBLIC_PATH_PREFIXES):
            continue

        for method, operation in path_item.items():
            if method in ["get", "post", "put", "delete", "patch"]:
                operation["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi

# ================================
# DEVELOPMENT SERVER
# ================================

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True
    )
