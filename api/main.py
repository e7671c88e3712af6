"""
FastAPI application for the campaign management system.

This module creates and configures the FastAPI application, registering
all routers, exception handlers and middleware.
"""

import os
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

import redis
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from api.config import settings
from api.dependencies import SessionLocal, engine, redis_client
from api.routers import (
    auth, candidates, dashboard, groups, import_router, leaders, locations,
    notifications, planillados, websocket
)
from api.schemas.common import ErrorResponse, HealthCheckResponse
from backend.models.schema import Base
from services.exceptions import ServiceError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.FileHandler(settings.LOG_FILE),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[-1]}")  # Hide credentials
    logger.info(f"Redis: {settings.REDIS_URL}")
    if not settings.ENABLE_AUTH:
        logger.warning("Authentication is disabled")

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables verified")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    os.makedirs(settings.TEMP_UPLOAD_DIR, exist_ok=True)
    logger.info(f"Temp upload directory: {settings.TEMP_UPLOAD_DIR}")

    yield

    logger.info("Shutting down application")


# Create FastAPI application
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS
)


# Exception handlers

def _error_response(request: Request, status_code: int, error: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail, path=request.url.path).model_dump(mode='json')
    )


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    """Map service layer errors to their HTTP status."""
    logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return _error_response(request, exc.status_code, exc.message, exc.detail)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        {"message": str(exc)} if settings.DEBUG else None
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handle 404 Not Found errors."""
    detail = getattr(exc, 'detail', None)
    error = detail if isinstance(detail, str) and detail != 'Not Found' else "Resource not found"
    return _error_response(request, status.HTTP_404_NOT_FOUND, error, {"path": request.url.path})


# Register routers with API prefix
app.include_router(auth.router, prefix=settings.API_PREFIX)
app.include_router(locations.router, prefix=settings.API_PREFIX)
app.include_router(candidates.router, prefix=settings.API_PREFIX)
app.include_router(groups.router, prefix=settings.API_PREFIX)
app.include_router(leaders.router, prefix=settings.API_PREFIX)
app.include_router(planillados.router, prefix=settings.API_PREFIX)
app.include_router(import_router.router, prefix=settings.API_PREFIX)
app.include_router(dashboard.router, prefix=settings.API_PREFIX)
app.include_router(notifications.router, prefix=settings.API_PREFIX)
app.include_router(websocket.router)  # WebSocket doesn't use /api prefix


# Root endpoints

@app.get('/', include_in_schema=False)
async def root():
    return {
        'message': f'Welcome to {settings.API_TITLE}',
        'version': settings.API_VERSION,
        'docs': '/docs',
        'resources': [
            f"{settings.API_PREFIX}/{name}" for name in (
                'candidates', 'groups', 'leaders', 'locations', 'planillados', 'import', 'dashboard'
            )
        ],
        'auth_enabled': settings.ENABLE_AUTH
    }


@app.get('/health', response_model=HealthCheckResponse, tags=['health'])
async def health_check():
    """
    Health check endpoint.

    Checks connectivity to:
    - Database
    - Redis
    - Celery workers

    A database failure makes the service `unhealthy`; Redis or worker
    problems only degrade it, since queued imports and notifications are
    the only features that depend on them.

    **Example:**
    ```bash
    curl http://localhost:8000/health
    ```
    """
    health_status = {
        'status': 'healthy',
        'timestamp': datetime.utcnow(),
        'version': settings.API_VERSION,
        'database': 'unknown',
        'redis': 'unknown',
        'celery': 'unknown'
    }

    try:
        with SessionLocal() as session:
            session.execute(text('SELECT 1'))
        health_status['database'] = 'connected'
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status['database'] = 'disconnected'
        health_status['status'] = 'unhealthy'

    try:
        redis_client.ping()
        health_status['redis'] = 'connected'
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        health_status['redis'] = 'disconnected'
        if health_status['status'] == 'healthy':
            health_status['status'] = 'degraded'

    try:
        from tasks.celery_app import celery_app

        active_workers = celery_app.control.inspect(timeout=1.0).active()

        if active_workers:
            health_status['celery'] = f'active ({len(active_workers)} workers)'
        else:
            health_status['celery'] = 'no workers'
            if health_status['status'] == 'healthy':
                health_status['status'] = 'degraded'
    except Exception as e:
        logger.error(f"Celery health check failed: {e}")
        health_status['celery'] = 'unknown'

    return HealthCheckResponse(**health_status)


@app.get('/api/ping', tags=['health'])
async def ping():
    """
    Simple ping endpoint for load balancers.

    **Returns:**
    ```json
    {"ping": "pong"}
    ```
    """
    return {'ping': 'pong'}


# Middleware for request logging

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and duration in milliseconds."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} - {response.status_code} ({elapsed_ms:.0f} ms)")
    return response


if __name__ == '__main__':
    import uvicorn

    uvicorn.run(
        'api.main:app',
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower()
    )
