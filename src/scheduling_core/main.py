"""FastAPI application entry point.

Creates the scheduling engine application with:
- Middleware (CORS, RequestID, Timing, ErrorLogging, SecurityHeaders)
- Exception handlers (APIException, HTTPException, RequestValidationError, general)
- API routers (v1)
- Health check endpoints (/health, /ready)
- Startup/shutdown of the database and the notification dispatcher
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from scheduling_core import __version__
from scheduling_core.api.v1.router import router as v1_router
from scheduling_core.config import get_settings
from scheduling_core.database import check_connection, close_db, init_db
from scheduling_core.exceptions import APIException
from scheduling_core.middleware import setup_middleware
from scheduling_core.services.notifications_service import get_notification_dispatcher
from scheduling_core.utils.logging import get_logger, get_request_id, log_error, setup_logging

setup_logging()
logger = get_logger("main")

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database on startup; flush notifications and close it on shutdown."""
    logger.info("Starting scheduling engine...")
    settings.validate_production_settings()
    try:
        await init_db()
        logger.info("Scheduling engine started successfully")
        yield
    except Exception as e:
        logger.error(f"Failed to start scheduling engine: {e}", exc_info=True)
        raise
    finally:
        logger.info("Shutting down scheduling engine...")
        try:
            await get_notification_dispatcher().drain()
            await close_db()
            logger.info("Scheduling engine shut down successfully")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)


app = FastAPI(
    title="Scheduling Core",
    description=(
        "Multi-tenant scheduling engine: availability, conflict-free booking, "
        "operator assignment and administration of departments and calendars."
    ),
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    debug=settings.debug,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "availability", "description": "Bookable slots of a department or operator"},
        {"name": "appointments", "description": "Booking, call-backs, assignment and cancellation"},
        {"name": "departments", "description": "Departments and operator memberships"},
        {"name": "schedules", "description": "Weekly hours and date exceptions"},
        {"name": "v1", "description": "API v1 information and metadata"},
    ],
)

setup_middleware(app)
app.include_router(v1_router)


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle engine exceptions."""
    context = {
        "method": request.method,
        "path": request.url.path,
        "status_code": exc.status_code,
        "code": exc.code,
    }
    if exc.status_code >= 500:
        log_error(exc, context=context)
    else:
        logger.warning(f"{exc.code}: {exc.message}", extra={"extra_fields": context})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions (404, 401 from internal auth, ...)."""
    logger.warning(
        f"{exc.status_code}: {request.method} {request.url.path}",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
                "status_code": exc.status_code,
            }
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "code": "HTTP_ERROR",
                "status_code": exc.status_code,
                "details": {},
            }
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        errors.append(
            {
                "field": ".".join(str(loc) for loc in error.get("loc", [])),
                "message": error.get("msg"),
                "type": error.get("type"),
            }
        )

    logger.warning(
        f"Validation error: {request.method} {request.url.path}",
        extra={"extra_fields": {"path": request.url.path, "validation_errors": errors}},
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": "Validation failed",
                "code": "VALIDATION_ERROR",
                "status_code": 422,
                "details": {
                    "reason": "INVALID_REQUEST",
                    "validation_errors": errors,
                },
            }
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    log_error(
        exc,
        context={
            "method": request.method,
            "path": request.url.path,
            "unhandled": True,
        },
    )

    # Internal details stay out of production responses
    message = "An internal server error occurred" if settings.is_production else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "message": message,
                "code": "INTERNAL_SERVER_ERROR",
                "status_code": 500,
                "details": (
                    {"request_id": get_request_id()}
                    if settings.is_production
                    else {"request_id": get_request_id(), "exception_type": type(exc).__name__}
                ),
            }
        },
    )


@app.get("/health")
async def health_check():
    """Liveness probe."""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment.value,
    }


@app.get("/ready")
async def readiness_check():
    """Readiness probe with a database round-trip."""
    db_connected = await check_connection()
    body = {
        "status": "ready" if db_connected else "not_ready",
        "app_name": settings.app_name,
        "environment": settings.environment.value,
        "database": "connected" if db_connected else "disconnected",
    }
    if not db_connected:
        logger.warning("Readiness check failed: database not connected")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "scheduling_core.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload and settings.is_development,
        log_level=settings.log_level.lower(),
    )
