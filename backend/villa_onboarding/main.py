"""
Villa Onboarding Progress — FastAPI Application Entry Point

Aggregates all routers, configures logging and middleware, maps engine errors
to HTTP responses, and initializes the database on startup.
"""
import logging
import os
import time
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from villa_onboarding.config import get_settings
from villa_onboarding.database import SessionLocal, init_db
from villa_onboarding.errors import InvalidInput, NotFound, OnboardingError, PersistenceError, ValidationFailed
from villa_onboarding.routes import onboarding_router, admin_router
from villa_onboarding.schemas.schemas import HealthResponse

settings = get_settings()
logger = logging.getLogger("villa_onboarding")


def configure_logging():
    """Console plus LOG_DIR/server.log, shared by every villa_onboarding logger."""
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    if logger.handlers:
        return
    formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    for handler in (logging.StreamHandler(), logging.FileHandler(os.path.join(settings.LOG_DIR, "server.log"))):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(settings.LOG_LEVEL.upper())


# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "API for villa/property onboarding progress. "
        "Covers the ten-step onboarding wizard, background field auto-save, "
        "skip/unskip of fields and steps, weighted progress scoring, "
        "completion and activation, and an audited admin dashboard."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize database tables and log boot info."""
    configure_logging()
    init_db()

    logger.info(
        "\n%s\n  %s v%s\n  TIME: %s\n  DATABASE: %s\n  DEBUG: %s\n%s",
        "=" * 60, settings.APP_NAME, settings.APP_VERSION,
        datetime.now().isoformat(), settings.DATABASE_URL, settings.DEBUG, "=" * 60,
    )


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api"):
        logger.info("-> %s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


# ─── Error mapping ───────────────────────────────────────────────────

def _error_response(status_code: int, exc: OnboardingError, **extra) -> JSONResponse:
    body = {"detail": str(exc), "error_code": exc.error_code}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return _error_response(404, exc)


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return _error_response(400, exc)


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return _error_response(422, exc, step=exc.stage_number, errors=exc.errors, warnings=exc.warnings)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(503, exc)


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(onboarding_router)
app.include_router(admin_router)


@app.get("/health", tags=["Health"], response_model=HealthResponse)
def deep_health():
    """Detailed health check including database status."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError as exc:
        logger.warning("Health check database query failed: %s", exc)
    finally:
        db.close()

    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        database="connected" if db_ok else "disconnected",
        version=settings.APP_VERSION,
        uptime_seconds=round(time.time() - BOOT_TIME, 1),
    )
