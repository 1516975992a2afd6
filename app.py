"""
Follo Backend
FastAPI application exposing the recurrence scheduling engine
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configuration and database
from config import settings
from database import create_db_engine, create_session_factory, init_db, DatabaseHealthCheck

from api import include_routers
from exceptions import SchedulingError
from services.container import build_services

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}")

    owns_engine = getattr(app.state, "services", None) is None
    if owns_engine:
        engine = create_db_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        try:
            init_db(engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

        app.state.db_engine = engine
        app.state.services = build_services(create_session_factory(engine), settings)
        await roll_horizon(app.state.services)

    yield

    # Shutdown
    if owns_engine:
        app.state.db_engine.dispose()
        app.state.services = None
    logger.info(f"Shutting down {settings.APP_NAME}")


async def roll_horizon(services) -> None:
    """Extend pending events to the full horizon for every profile"""
    for profile in services.profile_store.list_all():
        try:
            await services.event_generation.regenerate_profile(profile.id)
        except SchedulingError as e:
            # Next startup or regenerate call re-derives the projection
            logger.warning(f"Horizon roll failed for profile {profile.id}: {e}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## Follo API

    Recurrence-based scheduling for medications and supplements.

    ### Features
    - **Scheduling**: Expands daily / weekly / custom / monthly rules into calendar events
    - **Reconciliation**: Keeps the calendar in step with rule edits without touching recorded doses
    - **Dose actions**: Take / skip with an append-only history and inventory tracking
    - **Adherence**: Trailing-window percentage, streaks, daily history and insights
    - **Alarms**: Resolves which obligation an OS alarm fired for
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers (prefix /api/v1)
include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

def _error_body(status_code: int, message, detail: dict = None) -> dict:
    body = {
        "error": True,
        "message": message,
        "status_code": status_code,
        "timestamp": datetime.now().isoformat()
    }
    if detail:
        body["detail"] = detail
    return body


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request: Request, exc: SchedulingError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.message, exc.detail)
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.detail)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=_error_body(500, "An unexpected error occurred" if not settings.DEBUG else str(exc))
    )


# ==================== HEALTH ENDPOINTS ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "timestamp": datetime.now().isoformat()
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Detailed health check endpoint"""
    engine = getattr(request.app.state, "db_engine", None)
    health = DatabaseHealthCheck(engine) if engine is not None else None
    db_connected = bool(health and health.is_connected())
    services = getattr(request.app.state, "services", None)

    return {
        "status": "healthy" if db_connected and services else "degraded",
        "timestamp": datetime.now().isoformat(),
        "checks": {
            "database": {
                "status": "up" if db_connected else "down",
                "type": engine.dialect.name if engine is not None else None,
                "tables": health.get_table_counts() if db_connected else {}
            },
            "services": {
                "status": "ready" if services else "not_initialized"
            }
        },
        "config": {
            "horizon_days": settings.HORIZON_DAYS,
            "adherence_window_days": settings.ADHERENCE_WINDOW_DAYS,
            "alarm_timeout_seconds": settings.ALARM_LOAD_TIMEOUT_SECONDS
        },
        "version": settings.APP_VERSION,
        "environment": settings.ENV
    }


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
